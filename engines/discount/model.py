"""
Evolv Discount Engine — Value Types
===================================
A cart carries at most one discount: a promo code application OR a
points redemption. DiscountSelection refuses to hold both.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.primitives.money import ZERO, money_str, to_decimal

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"

VALID_DISCOUNT_TYPES = frozenset({DISCOUNT_PERCENTAGE, DISCOUNT_FIXED})

# One point redeems for one rupee.
POINT_VALUE = Decimal("1")


def normalize_code(code: Optional[str]) -> str:
    return str(code or "").strip().upper()


@dataclass(frozen=True)
class PromoCode:
    """Catalog entry for a promo code."""

    code: str
    discount_type: str
    discount_value: Decimal
    description: str = ""
    min_order_value: Decimal = ZERO
    max_discount: Optional[Decimal] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = None
    active: bool = True

    def __post_init__(self):
        object.__setattr__(self, "code", normalize_code(self.code))
        if not self.code:
            raise ValueError("code must be non-empty.")
        if self.discount_type not in VALID_DISCOUNT_TYPES:
            raise ValueError(f"Invalid discount_type: {self.discount_type}")
        value = to_decimal(self.discount_value)
        if value <= ZERO:
            raise ValueError("discount_value must be > 0.")
        if self.discount_type == DISCOUNT_PERCENTAGE and value > 100:
            raise ValueError("percentage discount_value must be <= 100.")
        object.__setattr__(self, "discount_value", value)
        object.__setattr__(self, "min_order_value", to_decimal(self.min_order_value))
        if self.max_discount is not None:
            object.__setattr__(self, "max_discount", to_decimal(self.max_discount))
        if self.usage_limit is not None and self.usage_limit < 0:
            raise ValueError("usage_limit must be >= 0.")


@dataclass(frozen=True)
class PromoApplication:
    code: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": format(self.discount_value, "f"),
            "discount_amount": money_str(self.discount_amount),
            "description": self.description,
        }


@dataclass(frozen=True)
class PointsRedemption:
    points_to_redeem: int
    discount_amount: Decimal
    available_points: int

    def to_dict(self) -> dict:
        return {
            "points_to_redeem": self.points_to_redeem,
            "discount_amount": money_str(self.discount_amount),
            "available_points": self.available_points,
        }


@dataclass(frozen=True)
class DiscountSelection:
    """The single active discount on a cart, or none."""

    promo: Optional[PromoApplication] = None
    points: Optional[PointsRedemption] = None

    def __post_init__(self):
        if self.promo is not None and self.points is not None:
            raise ValueError("A cart cannot carry a promo code and a points redemption together.")

    @property
    def discount_amount(self) -> Decimal:
        if self.promo is not None:
            return self.promo.discount_amount
        if self.points is not None:
            return self.points.discount_amount
        return ZERO

    @property
    def is_empty(self) -> bool:
        return self.promo is None and self.points is None

    @property
    def promo_code(self) -> Optional[str]:
        return self.promo.code if self.promo else None

    @property
    def points_to_redeem(self) -> int:
        return self.points.points_to_redeem if self.points else 0

    def to_dict(self) -> dict:
        return {
            "promo_code": self.promo.to_dict() if self.promo else None,
            "points_redemption": self.points.to_dict() if self.points else None,
            "discount_amount": money_str(self.discount_amount),
        }


NO_DISCOUNT = DiscountSelection()
