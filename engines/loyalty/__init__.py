"""
Evolv Loyalty Engine
====================
Tiered point accrual and provisional redemption.
"""

from engines.loyalty.services import (
    LoyaltyAccount,
    LoyaltyLedger,
    LoyaltyService,
    PointsReservation,
)
from engines.loyalty.tiers import (
    TIER_BRONZE,
    TIER_GOLD,
    TIER_SILVER,
    points_for,
    rate_for,
    tier_for,
)

__all__ = [
    "LoyaltyAccount",
    "LoyaltyLedger",
    "LoyaltyService",
    "PointsReservation",
    "TIER_BRONZE",
    "TIER_GOLD",
    "TIER_SILVER",
    "points_for",
    "rate_for",
    "tier_for",
]
