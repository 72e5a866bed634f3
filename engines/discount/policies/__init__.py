"""
Evolv Discount Engine — Policies
================================
Promo code and points redemption guards. Each returns None when the
request passes, or the RejectionReason that stops it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason
from engines.discount.model import PromoCode


def promo_must_exist_policy(
    code: str,
    promo: Optional[PromoCode],
) -> Optional[RejectionReason]:
    if promo is None or not promo.active:
        return RejectionReason(
            code=ReasonCode.INVALID_CODE,
            message=f"Promo code '{code}' is not valid.",
            policy_name="promo_must_exist_policy",
        )
    return None


def promo_validity_window_policy(
    promo: PromoCode,
    now: datetime,
) -> Optional[RejectionReason]:
    if promo.valid_from is not None and now < promo.valid_from:
        return RejectionReason(
            code=ReasonCode.INVALID_CODE,
            message=f"Promo code '{promo.code}' is not active yet.",
            policy_name="promo_validity_window_policy",
        )
    if promo.valid_until is not None and now > promo.valid_until:
        return RejectionReason(
            code=ReasonCode.EXPIRED,
            message=f"Promo code '{promo.code}' has expired.",
            policy_name="promo_validity_window_policy",
        )
    return None


def promo_min_order_policy(
    promo: PromoCode,
    cart_subtotal: Decimal,
) -> Optional[RejectionReason]:
    if cart_subtotal < promo.min_order_value:
        return RejectionReason(
            code=ReasonCode.MIN_ORDER_NOT_MET,
            message=(
                f"Promo code '{promo.code}' requires a minimum order of "
                f"₹{promo.min_order_value}."
            ),
            policy_name="promo_min_order_policy",
        )
    return None


def promo_usage_limit_policy(
    promo: PromoCode,
    times_used: int,
) -> Optional[RejectionReason]:
    if promo.usage_limit is not None and times_used >= promo.usage_limit:
        return RejectionReason(
            code=ReasonCode.USAGE_LIMIT_REACHED,
            message=f"Promo code '{promo.code}' has reached its usage limit.",
            policy_name="promo_usage_limit_policy",
        )
    return None


def points_must_be_positive_policy(points) -> Optional[RejectionReason]:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        return RejectionReason(
            code=ReasonCode.INVALID_POINTS,
            message="Points to redeem must be a positive whole number.",
            policy_name="points_must_be_positive_policy",
        )
    return None


def points_within_balance_policy(
    points: int,
    available_balance: int,
) -> Optional[RejectionReason]:
    if points > available_balance:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_BALANCE,
            message=f"Only {available_balance} points available, {points} requested.",
            policy_name="points_within_balance_policy",
        )
    return None


def points_within_subtotal_policy(
    discount_amount: Decimal,
    cart_subtotal: Decimal,
) -> Optional[RejectionReason]:
    if discount_amount > cart_subtotal:
        return RejectionReason(
            code=ReasonCode.EXCEEDS_SUBTOTAL,
            message="Points discount cannot exceed the cart subtotal.",
            policy_name="points_within_subtotal_policy",
        )
    return None
