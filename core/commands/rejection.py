"""
Evolv Command Layer — Rejection Model
======================================
Structured rejection reasons for denied commands.

A RejectionReason is NOT an error by itself. Policies return one,
services turn it into the matching EngineError, and the HTTP layer
serializes it for the caller.

Every rejection must be:
- Deterministic (same input → same rejection)
- Machine-readable (code)
- Human-readable (message)
- Traceable to the policy that produced it
"""

from __future__ import annotations

from dataclasses import dataclass


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for command rejection.

    Fields:
        code:        Machine-readable rejection code (e.g. 'ORDER_NOT_PENDING').
        message:     Human-readable explanation.
        policy_name: Name of the policy that caused rejection.
    """

    code: str
    message: str
    policy_name: str

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes. Extensible by engines.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Input ─────────────────────────────────────────────────
    INVALID_REQUEST = "INVALID_REQUEST"
    PRICE_MISMATCH = "PRICE_MISMATCH"
    PRICE_CHANGED = "PRICE_CHANGED"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    EMPTY_CART = "EMPTY_CART"

    # ── Discounts ─────────────────────────────────────────────
    INVALID_CODE = "INVALID_CODE"
    EXPIRED = "EXPIRED"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    EXCEEDS_SUBTOTAL = "EXCEEDS_SUBTOTAL"
    INVALID_POINTS = "INVALID_POINTS"

    # ── Lifecycle ─────────────────────────────────────────────
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    OUT_OF_ORDER_EVENT = "OUT_OF_ORDER_EVENT"
    ORDER_NOT_PENDING = "ORDER_NOT_PENDING"
    ORDER_ALREADY_PAID = "ORDER_ALREADY_PAID"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_SIGNATURE_INVALID = "PAYMENT_SIGNATURE_INVALID"
    PAYMENT_AMOUNT_MISMATCH = "PAYMENT_AMOUNT_MISMATCH"
    PAYMENT_WINDOW_EXPIRED = "PAYMENT_WINDOW_EXPIRED"
    STALE_VERSION = "STALE_VERSION"

    # ── Exchange / refund ─────────────────────────────────────
    EXCHANGE_NOT_FOUND = "EXCHANGE_NOT_FOUND"
    EXCHANGE_NOT_ELIGIBLE = "EXCHANGE_NOT_ELIGIBLE"
    EXCHANGE_WINDOW_EXPIRED = "EXCHANGE_WINDOW_EXPIRED"
    EXCHANGE_ALREADY_OPEN = "EXCHANGE_ALREADY_OPEN"
    EXCHANGE_NOT_PENDING = "EXCHANGE_NOT_PENDING"
    REJECTION_REASON_REQUIRED = "REJECTION_REASON_REQUIRED"
    REFUND_NOT_ALLOWED = "REFUND_NOT_ALLOWED"
    REFUND_INVALID_AMOUNT = "REFUND_INVALID_AMOUNT"
    REFUND_RETRY_TOO_SOON = "REFUND_RETRY_TOO_SOON"

    # ── Access ────────────────────────────────────────────────
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"
    FORBIDDEN = "FORBIDDEN"

    # ── External ──────────────────────────────────────────────
    EXTERNAL_SERVICE_FAILED = "EXTERNAL_SERVICE_FAILED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    WEBHOOK_UNAUTHORIZED = "WEBHOOK_UNAUTHORIZED"
