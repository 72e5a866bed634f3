"""
Evolv Discount Engine
=====================
Promo code OR points redemption. Never both.
"""

from engines.discount.model import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    NO_DISCOUNT,
    DiscountSelection,
    PointsRedemption,
    PromoApplication,
    PromoCode,
)
from engines.discount.services import DiscountResolver, PromoCodeStore

__all__ = [
    "DISCOUNT_FIXED",
    "DISCOUNT_PERCENTAGE",
    "DiscountResolver",
    "DiscountSelection",
    "NO_DISCOUNT",
    "PointsRedemption",
    "PromoApplication",
    "PromoCode",
    "PromoCodeStore",
]
