"""
Evolv HTTP API - Error Mapping
==============================
Stable transport error mapping for command rejections and engine errors.

    ValidationError        400  (WEBHOOK_UNAUTHORIZED → 401)
    NotFoundError          404
    ConflictError          409  (details carry current_state)
    ExpiredError           410
    ExternalServiceError   502
"""

from __future__ import annotations

from typing import Any, Optional

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import (
    ConflictError,
    EngineError,
    ExpiredError,
    ExternalServiceError,
    NotFoundError,
)
from core.http_api.contracts import HttpApiErrorBody, HttpApiResponse

_UNAUTHORIZED_CODES = frozenset({
    ReasonCode.AUTH_REQUIRED,
    ReasonCode.AUTH_INVALID,
    ReasonCode.WEBHOOK_UNAUTHORIZED,
})


def error_response(
    *,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    return HttpApiResponse(
        ok=False,
        error=HttpApiErrorBody(
            code=code,
            message=message,
            details=details or {},
        ),
    ).to_dict()


def success_response(data: Any) -> dict[str, Any]:
    return HttpApiResponse(ok=True, data=data).to_dict()


def map_rejection_reason(reason: RejectionReason) -> HttpApiErrorBody:
    return HttpApiErrorBody(
        code=reason.code,
        message=reason.message,
        details={"policy_name": reason.policy_name},
    )


def rejection_response(
    reason: RejectionReason,
    *,
    extra_details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    mapped = map_rejection_reason(reason)
    details = dict(mapped.details)
    if extra_details:
        details.update(extra_details)
    return error_response(
        code=mapped.code,
        message=mapped.message,
        details=details,
    )


def status_for_reason(reason: RejectionReason) -> int:
    if reason.code in _UNAUTHORIZED_CODES:
        return 401
    if reason.code == ReasonCode.FORBIDDEN:
        return 403
    return 400


def status_for_error(exc: EngineError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, ExpiredError):
        return 410
    if isinstance(exc, ExternalServiceError):
        return 502
    return status_for_reason(exc.reason)


def engine_error_response(exc: EngineError) -> tuple[int, dict[str, Any]]:
    extra: dict[str, Any] = {}
    if exc.current_state is not None:
        extra["current_state"] = exc.current_state
    if isinstance(exc, ExternalServiceError):
        extra["system_id"] = exc.system_id
        extra["retryable"] = exc.retryable
    return status_for_error(exc), rejection_response(exc.reason, extra_details=extra)
