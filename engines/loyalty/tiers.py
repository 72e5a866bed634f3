"""
Evolv Loyalty Engine — Tiers
============================
Tier is derived from lifetime earned points. Each tier earns a fixed
share of the order total as points:

    bronze   0+       2%   (1 point per ₹50)
    silver   1000+    6%   (3 points per ₹50)
    gold     2500+   10%   (5 points per ₹50)

A tier change applies to the next rate calculation only.
"""

from __future__ import annotations

from decimal import Decimal

from core.primitives.money import floor_int, to_decimal

TIER_BRONZE = "bronze"
TIER_SILVER = "silver"
TIER_GOLD = "gold"

# Highest threshold first.
TIER_THRESHOLDS = (
    (TIER_GOLD, 2500),
    (TIER_SILVER, 1000),
    (TIER_BRONZE, 0),
)

TIER_RATES = {
    TIER_BRONZE: Decimal("0.02"),
    TIER_SILVER: Decimal("0.06"),
    TIER_GOLD: Decimal("0.10"),
}

VALID_TIERS = frozenset(TIER_RATES)


def tier_for(lifetime_points: int) -> str:
    for tier, threshold in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            return tier
    return TIER_BRONZE


def rate_for(tier: str) -> Decimal:
    if tier not in TIER_RATES:
        raise ValueError(f"Unknown tier: {tier}")
    return TIER_RATES[tier]


def points_for(total, tier: str) -> int:
    """floor(total × tierRate); never negative."""
    amount = to_decimal(total)
    if amount <= 0:
        return 0
    return floor_int(amount * rate_for(tier))
