"""
Evolv Loyalty Engine — Event Types
==================================
Spendable balance and lifetime (tier basis) points per customer.
Redemptions are reserved against an order and deducted only when the
order's payment is confirmed.
"""

# ── Event Types ───────────────────────────────────────────────

POINTS_RESERVED_V1 = "loyalty.points.reserved.v1"
RESERVATION_RELEASED_V1 = "loyalty.points.released.v1"
POINTS_REDEEMED_V1 = "loyalty.points.redeemed.v1"
POINTS_EARNED_V1 = "loyalty.points.earned.v1"
DELIVERY_BONUS_CREDITED_V1 = "loyalty.bonus.credited.v1"
TIER_CHANGED_V1 = "loyalty.tier.changed.v1"

ALL_EVENT_TYPES = (
    POINTS_RESERVED_V1,
    RESERVATION_RELEASED_V1,
    POINTS_REDEEMED_V1,
    POINTS_EARNED_V1,
    DELIVERY_BONUS_CREDITED_V1,
    TIER_CHANGED_V1,
)

# ── Idempotency Keys ──────────────────────────────────────────


def redeem_key(order_number: str) -> str:
    return f"redeem:{order_number}"


def earn_key(order_number: str) -> str:
    return f"earn:{order_number}"


def delivery_bonus_key(order_number: str) -> str:
    return f"delivery-bonus:{order_number}"
