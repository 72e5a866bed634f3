"""
Evolv Discount Engine — Service Layer
=====================================
PromoCodeStore:   promo catalog plus usage accounting. A code's usage
                  is reserved at order creation, consumed when payment
                  is confirmed and released if the order is cancelled.
DiscountResolver: prices exactly one discount against a cart subtotal.
                  Every call returns a fresh DiscountSelection holding
                  only the discount just applied, so applying one
                  option always clears the other.

Points are NOT deducted here. A redemption is provisional until the
order's payment is confirmed (see engines.loyalty).
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import ValidationError
from core.primitives.money import ZERO, round_money, to_decimal
from core.time import Clock, SystemClock
from engines.discount.model import (
    DISCOUNT_PERCENTAGE,
    NO_DISCOUNT,
    POINT_VALUE,
    DiscountSelection,
    PointsRedemption,
    PromoApplication,
    PromoCode,
    normalize_code,
)
from engines.discount.policies import (
    points_must_be_positive_policy,
    points_within_balance_policy,
    points_within_subtotal_policy,
    promo_min_order_policy,
    promo_must_exist_policy,
    promo_usage_limit_policy,
    promo_validity_window_policy,
)

logger = logging.getLogger("evolv.discount")


def _reject(reason: Optional[RejectionReason]) -> None:
    if reason is not None:
        logger.info("Discount rejected: %s (%s)", reason.code, reason.message)
        raise ValidationError(reason)


# ── Promo Code Store ──────────────────────────────────────────

class PromoCodeStore:
    """In-memory promo catalog with reserve/consume/release usage."""

    def __init__(self, codes: Iterable[PromoCode] = ()):
        self._lock = threading.Lock()
        self._codes: Dict[str, PromoCode] = {}
        self._reserved: Dict[str, Set[str]] = {}
        self._consumed: Dict[str, Set[str]] = {}
        for promo in codes:
            self.upsert(promo)

    def upsert(self, promo: PromoCode) -> None:
        with self._lock:
            self._codes[promo.code] = promo

    def get(self, code: str) -> Optional[PromoCode]:
        with self._lock:
            return self._codes.get(normalize_code(code))

    def times_used(self, code: str) -> int:
        """Consumed plus reserved uses."""
        key = normalize_code(code)
        with self._lock:
            return len(self._consumed.get(key, ())) + len(self._reserved.get(key, ()))

    def reserve(self, code: str, order_number: str) -> None:
        key = normalize_code(code)
        with self._lock:
            promo = self._codes.get(key)
            if promo is None:
                raise ValidationError.build(
                    ReasonCode.INVALID_CODE,
                    f"Promo code '{key}' is not valid.",
                    "PromoCodeStore.reserve",
                )
            reserved = self._reserved.setdefault(key, set())
            consumed = self._consumed.setdefault(key, set())
            if order_number in reserved or order_number in consumed:
                return
            _reject(promo_usage_limit_policy(promo, len(reserved) + len(consumed)))
            reserved.add(order_number)

    def consume(self, code: str, order_number: str) -> None:
        key = normalize_code(code)
        with self._lock:
            reserved = self._reserved.setdefault(key, set())
            consumed = self._consumed.setdefault(key, set())
            if order_number in consumed:
                return
            reserved.discard(order_number)
            consumed.add(order_number)
        logger.info("Promo code %s used by order %s", key, order_number)

    def release(self, code: str, order_number: str) -> None:
        key = normalize_code(code)
        with self._lock:
            self._reserved.get(key, set()).discard(order_number)


# ── Resolver ──────────────────────────────────────────────────

class DiscountResolver:

    def __init__(self, promo_store: PromoCodeStore, *, clock: Clock | None = None):
        self._promos = promo_store
        self._clock = clock or SystemClock()

    def promo_discount_amount(self, promo: PromoCode, cart_subtotal: Decimal) -> Decimal:
        if promo.discount_type == DISCOUNT_PERCENTAGE:
            amount = cart_subtotal * promo.discount_value / 100
        else:
            amount = promo.discount_value
        if promo.max_discount is not None:
            amount = min(amount, promo.max_discount)
        return round_money(max(ZERO, min(amount, cart_subtotal)))

    def apply_promo_code(self, code: str, cart_subtotal, items=()) -> DiscountSelection:
        """
        Validate and price a promo code.

        Returns a selection holding only the promo. Raises ValidationError
        with INVALID_CODE, EXPIRED, MIN_ORDER_NOT_MET or USAGE_LIMIT_REACHED.
        """
        subtotal = to_decimal(cart_subtotal)
        normalized = normalize_code(code)
        promo = self._promos.get(normalized)

        _reject(promo_must_exist_policy(normalized, promo))
        _reject(promo_validity_window_policy(promo, self._clock.now_utc()))
        _reject(promo_min_order_policy(promo, subtotal))
        _reject(promo_usage_limit_policy(promo, self._promos.times_used(promo.code)))

        application = PromoApplication(
            code=promo.code,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            discount_amount=self.promo_discount_amount(promo, subtotal),
            description=promo.description,
        )
        logger.debug("Promo %s priced at %s on %s", promo.code, application.discount_amount, subtotal)
        return DiscountSelection(promo=application)

    def apply_points(self, points, available_balance: int, cart_subtotal) -> DiscountSelection:
        """
        Price a points redemption. Returns a selection holding only the
        redemption. Raises ValidationError with INVALID_POINTS,
        INSUFFICIENT_BALANCE or EXCEEDS_SUBTOTAL.
        """
        subtotal = to_decimal(cart_subtotal)
        _reject(points_must_be_positive_policy(points))
        _reject(points_within_balance_policy(points, available_balance))

        discount_amount = round_money(POINT_VALUE * points)
        _reject(points_within_subtotal_policy(discount_amount, subtotal))

        return DiscountSelection(points=PointsRedemption(
            points_to_redeem=points,
            discount_amount=discount_amount,
            available_points=available_balance,
        ))

    def clear(self) -> DiscountSelection:
        return NO_DISCOUNT

    def resolve(
        self,
        *,
        promo_code: Optional[str],
        points: int,
        available_balance: int,
        cart_subtotal,
        items=(),
    ) -> DiscountSelection:
        """
        Server-side re-resolution at order submission. A request naming
        both a promo and points is malformed.
        """
        if promo_code and points:
            raise ValidationError.build(
                ReasonCode.INVALID_REQUEST,
                "Only one of promo code or points redemption may be applied.",
                "DiscountResolver.resolve",
            )
        if promo_code:
            return self.apply_promo_code(promo_code, cart_subtotal, items)
        if points:
            return self.apply_points(points, available_balance, cart_subtotal)
        return NO_DISCOUNT
