"""
Evolv Core — Error Taxonomy
============================
Exceptions raised by engine services at the command boundary.

Every error carries a RejectionReason (code + message + policy) so the
HTTP layer can map it without string matching. Conflict errors also
carry the current authoritative state so callers can reconcile instead
of retrying blindly.

    ValidationError       malformed or inconsistent input
    NotFoundError         referenced order / exchange does not exist
    ConflictError         transition attempted from an incompatible state
    ExpiredError          payment window or exchange window elapsed
    ExternalServiceError  gateway / carrier unreachable or failed
"""

from __future__ import annotations

from typing import Any, Optional

from core.commands.rejection import ReasonCode, RejectionReason


class EngineError(Exception):
    """Base error for all engine command failures."""

    def __init__(
        self,
        reason: RejectionReason,
        *,
        current_state: Optional[dict] = None,
    ):
        super().__init__(reason.message)
        self.reason = reason
        self.current_state = current_state

    @property
    def code(self) -> str:
        return self.reason.code

    @classmethod
    def build(
        cls,
        code: str,
        message: str,
        policy_name: str,
        **kwargs: Any,
    ) -> "EngineError":
        return cls(
            RejectionReason(code=code, message=message, policy_name=policy_name),
            **kwargs,
        )


class ValidationError(EngineError):
    """Input was malformed or did not match the server recomputation."""


class NotFoundError(EngineError):
    """The referenced aggregate does not exist."""


class ConflictError(EngineError):
    """The aggregate is not in a state that allows the transition."""


class ExpiredError(EngineError):
    """A time window (payment, exchange) has elapsed."""


class ExternalServiceError(EngineError):
    """A collaborator (gateway, carrier, notifier) failed."""

    def __init__(
        self,
        reason: RejectionReason,
        *,
        system_id: str = "",
        retryable: bool = False,
        current_state: Optional[dict] = None,
    ):
        super().__init__(reason, current_state=current_state)
        self.system_id = system_id
        self.retryable = retryable


# ══════════════════════════════════════════════════════════════
# REASON → ERROR CLASS
# ══════════════════════════════════════════════════════════════

_NOT_FOUND_CODES = frozenset({
    ReasonCode.ORDER_NOT_FOUND,
    ReasonCode.EXCHANGE_NOT_FOUND,
})

_EXPIRED_CODES = frozenset({
    ReasonCode.PAYMENT_WINDOW_EXPIRED,
    ReasonCode.EXCHANGE_WINDOW_EXPIRED,
})

_CONFLICT_CODES = frozenset({
    ReasonCode.INVALID_TRANSITION,
    ReasonCode.OUT_OF_ORDER_EVENT,
    ReasonCode.ORDER_NOT_PENDING,
    ReasonCode.ORDER_ALREADY_PAID,
    ReasonCode.ORDER_CANCELLED,
    ReasonCode.STALE_VERSION,
    ReasonCode.EXCHANGE_NOT_ELIGIBLE,
    ReasonCode.EXCHANGE_ALREADY_OPEN,
    ReasonCode.EXCHANGE_NOT_PENDING,
    ReasonCode.REFUND_NOT_ALLOWED,
    ReasonCode.REFUND_RETRY_TOO_SOON,
})


def error_for(reason: RejectionReason, current_state: Optional[dict] = None) -> EngineError:
    """Wrap a policy rejection in the matching error class."""
    if reason.code in _NOT_FOUND_CODES:
        return NotFoundError(reason)
    if reason.code in _EXPIRED_CODES:
        return ExpiredError(reason, current_state=current_state)
    if reason.code in _CONFLICT_CODES:
        return ConflictError(reason, current_state=current_state)
    return ValidationError(reason)
