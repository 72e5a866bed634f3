"""
Evolv HTTP API Auth - Principal Resolution
==========================================
Resolve the calling principal from request headers.
"""

from __future__ import annotations

from typing import Any

from core.commands.rejection import ReasonCode, RejectionReason
from core.http_api.auth.provider import AuthPrincipal

HEADER_API_KEY = "x-api-key"


def normalize_headers(headers: dict[str, Any] | None) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for key, value in (headers or {}).items():
        normalized[str(key).strip().lower()] = str(value).strip()
    return normalized


def _reject(code: str, message: str) -> RejectionReason:
    return RejectionReason(
        code=code,
        message=message,
        policy_name="http_api_auth_resolver",
    )


def resolve_auth_principal(
    headers: dict[str, Any] | None,
    auth_provider,
) -> AuthPrincipal | RejectionReason:
    api_key = normalize_headers(headers).get(HEADER_API_KEY)
    if not api_key:
        return _reject(ReasonCode.AUTH_REQUIRED, "Missing API key.")
    principal = auth_provider.resolve_api_key(api_key)
    if principal is None:
        return _reject(ReasonCode.AUTH_INVALID, "Invalid API key.")
    return principal


def resolve_admin_principal(
    headers: dict[str, Any] | None,
    auth_provider,
) -> AuthPrincipal | RejectionReason:
    principal = resolve_auth_principal(headers, auth_provider)
    if isinstance(principal, RejectionReason):
        return principal
    if not principal.is_admin:
        return _reject(ReasonCode.FORBIDDEN, "Admin access required.")
    return principal
