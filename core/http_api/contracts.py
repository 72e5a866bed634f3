"""
Evolv HTTP API - Contracts
==========================
Framework-agnostic response envelope shared by every endpoint:

    {"ok": true,  "data": ...}
    {"ok": false, "error": {"code", "message", "details"}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class HttpApiErrorBody:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class HttpApiResponse:
    ok: bool
    data: Any = None
    error: Optional[HttpApiErrorBody] = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data}
        if self.error is None:
            raise ValueError("error must be set when ok is False.")
        return {"ok": False, "error": self.error.to_dict()}


@dataclass(frozen=True)
class HttpApiResult:
    """A status code and the envelope to send with it."""

    status: int
    body: dict[str, Any]

    def __post_init__(self):
        if not 100 <= self.status <= 599:
            raise ValueError("status must be a valid HTTP status code.")
