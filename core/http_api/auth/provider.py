"""
Evolv HTTP API Auth - Provider and Principal Models
===================================================
Deterministic API-key principal resolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

from core.commands.base import ACTOR_ADMIN, ACTOR_CUSTOMER

PRINCIPAL_ACTOR_TYPES = frozenset({ACTOR_CUSTOMER, ACTOR_ADMIN})


@dataclass(frozen=True)
class AuthPrincipal:
    actor_id: str
    actor_type: str

    def __post_init__(self):
        if not self.actor_id or not isinstance(self.actor_id, str):
            raise ValueError("actor_id must be a non-empty string.")
        actor_type = str(self.actor_type or "").strip().upper()
        if actor_type not in PRINCIPAL_ACTOR_TYPES:
            raise ValueError(
                f"actor_type must be one of {sorted(PRINCIPAL_ACTOR_TYPES)}."
            )
        object.__setattr__(self, "actor_type", actor_type)

    @property
    def is_admin(self) -> bool:
        return self.actor_type == ACTOR_ADMIN


class AuthProvider(Protocol):
    def resolve_api_key(self, api_key: str) -> AuthPrincipal | None:
        ...


class InMemoryAuthProvider:
    """
    Deterministic in-memory auth provider for tests/bootstrap.
    """

    def __init__(self, api_key_to_principal: Mapping[str, AuthPrincipal] | None = None):
        normalized: dict[str, AuthPrincipal] = {}
        for api_key, principal in sorted(
            dict(api_key_to_principal or {}).items(),
            key=lambda item: item[0],
        ):
            if not isinstance(api_key, str) or not api_key.strip():
                raise ValueError("API key must be a non-empty string.")
            if not isinstance(principal, AuthPrincipal):
                raise ValueError("Principal must be AuthPrincipal.")
            normalized[api_key] = principal
        self._api_key_to_principal = normalized

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, str]]) -> "InMemoryAuthProvider":
        """Build from {"api-key": {"actor_id": ..., "actor_type": ...}} settings."""
        return cls({
            key: AuthPrincipal(actor_id=value["actor_id"], actor_type=value["actor_type"])
            for key, value in dict(raw or {}).items()
        })

    def resolve_api_key(self, api_key: str) -> AuthPrincipal | None:
        if not isinstance(api_key, str):
            return None
        return self._api_key_to_principal.get(api_key)
