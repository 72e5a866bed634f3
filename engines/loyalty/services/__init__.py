"""
Evolv Loyalty Engine — Service Layer
====================================
Points ledger per customer:

    balance    spendable points (earned - redeemed)
    lifetime   total points ever earned; decides the tier
    reserved   points held against unpaid orders

    available = balance - reserved

Every mutation is guarded by an idempotency key derived from the
order number, so a replayed payment confirmation or delivery
confirmation can never deduct or credit twice.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from core.errors import ValidationError
from core.events import DomainEvent, EventBus
from core.time import Clock, SystemClock
from engines.loyalty.events import (
    DELIVERY_BONUS_CREDITED_V1,
    POINTS_EARNED_V1,
    POINTS_REDEEMED_V1,
    POINTS_RESERVED_V1,
    RESERVATION_RELEASED_V1,
    TIER_CHANGED_V1,
    delivery_bonus_key,
    earn_key,
    redeem_key,
)
from engines.loyalty.policies import (
    positive_points_policy,
    reservation_within_available_policy,
)
from engines.loyalty.tiers import points_for, tier_for

logger = logging.getLogger("evolv.loyalty")


@dataclass(frozen=True)
class LoyaltyAccount:
    customer_id: str
    balance: int
    lifetime_points: int
    reserved: int
    tier: str

    @property
    def available(self) -> int:
        return self.balance - self.reserved

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "balance": self.balance,
            "lifetime_points": self.lifetime_points,
            "reserved": self.reserved,
            "available": self.available,
            "tier": self.tier,
        }


@dataclass(frozen=True)
class PointsReservation:
    customer_id: str
    order_number: str
    points: int


# ── Ledger (projection) ───────────────────────────────────────

class LoyaltyLedger:
    """In-memory projection of loyalty events per customer."""

    def __init__(self):
        self._events: List[dict] = []
        self._balances: Dict[str, int] = {}
        self._lifetime: Dict[str, int] = {}
        self._reservations: Dict[str, PointsReservation] = {}
        self._applied_keys: Set[str] = set()

    def apply(self, event_type: str, payload: Dict[str, Any]) -> None:
        self._events.append({"event_type": event_type, "payload": payload})
        cid = payload["customer_id"]
        key = payload.get("idempotency_key")
        if key:
            self._applied_keys.add(key)

        if event_type == POINTS_RESERVED_V1:
            self._reservations[payload["order_number"]] = PointsReservation(
                customer_id=cid,
                order_number=payload["order_number"],
                points=payload["points"],
            )

        elif event_type == RESERVATION_RELEASED_V1:
            self._reservations.pop(payload["order_number"], None)

        elif event_type == POINTS_REDEEMED_V1:
            self._reservations.pop(payload["order_number"], None)
            self._balances[cid] = self._balances.get(cid, 0) - payload["points"]

        elif event_type in (POINTS_EARNED_V1, DELIVERY_BONUS_CREDITED_V1):
            pts = payload["points"]
            self._balances[cid] = self._balances.get(cid, 0) + pts
            self._lifetime[cid] = self._lifetime.get(cid, 0) + pts

    def has_applied(self, idempotency_key: str) -> bool:
        return idempotency_key in self._applied_keys

    def get_balance(self, customer_id: str) -> int:
        return self._balances.get(customer_id, 0)

    def get_lifetime(self, customer_id: str) -> int:
        return self._lifetime.get(customer_id, 0)

    def get_reserved(self, customer_id: str) -> int:
        return sum(r.points for r in self._reservations.values() if r.customer_id == customer_id)

    def get_reservation(self, order_number: str) -> Optional[PointsReservation]:
        return self._reservations.get(order_number)

    def events_for(self, customer_id: str) -> List[dict]:
        return [e for e in self._events if e["payload"]["customer_id"] == customer_id]

    @property
    def event_count(self) -> int:
        return len(self._events)


# ── Service ───────────────────────────────────────────────────

class LoyaltyService:
    """All point mutations go through here and produce ledger events."""

    def __init__(
        self,
        ledger: LoyaltyLedger | None = None,
        *,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
    ):
        self._ledger = ledger or LoyaltyLedger()
        self._bus = event_bus
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()

    @property
    def ledger(self) -> LoyaltyLedger:
        return self._ledger

    def _record(self, event_type: str, payload: Dict[str, Any]) -> None:
        payload = {**payload, "recorded_at": self._clock.now_utc().isoformat()}
        self._ledger.apply(event_type, payload)
        if self._bus is not None:
            self._bus.publish(DomainEvent(
                event_type=event_type,
                subject_id=payload["customer_id"],
                occurred_at=self._clock.now_utc(),
                payload=payload,
            ))

    # ── Queries ───────────────────────────────────────────────

    def account(self, customer_id: str) -> LoyaltyAccount:
        with self._lock:
            lifetime = self._ledger.get_lifetime(customer_id)
            return LoyaltyAccount(
                customer_id=customer_id,
                balance=self._ledger.get_balance(customer_id),
                lifetime_points=lifetime,
                reserved=self._ledger.get_reserved(customer_id),
                tier=tier_for(lifetime),
            )

    def available_points(self, customer_id: str) -> int:
        return self.account(customer_id).available

    def current_tier(self, customer_id: str) -> str:
        return self.account(customer_id).tier

    # ── Redemption ────────────────────────────────────────────

    def reserve(self, customer_id: str, order_number: str, points: int) -> PointsReservation:
        """Hold `points` against an unpaid order. Idempotent per order."""
        with self._lock:
            existing = self._ledger.get_reservation(order_number)
            if existing is not None:
                return existing
            for reason in (
                positive_points_policy(points),
                reservation_within_available_policy(points, self.available_points(customer_id)),
            ):
                if reason is not None:
                    raise ValidationError(reason)
            self._record(POINTS_RESERVED_V1, {
                "customer_id": customer_id,
                "order_number": order_number,
                "points": points,
            })
            logger.info("Reserved %d points for order %s", points, order_number)
            return self._ledger.get_reservation(order_number)

    def release(self, order_number: str) -> int:
        """Return reserved points to the available balance. Returns points released."""
        with self._lock:
            reservation = self._ledger.get_reservation(order_number)
            if reservation is None:
                return 0
            self._record(RESERVATION_RELEASED_V1, {
                "customer_id": reservation.customer_id,
                "order_number": order_number,
                "points": reservation.points,
            })
            logger.info("Released %d reserved points for order %s", reservation.points, order_number)
            return reservation.points

    def commit_redemption(self, order_number: str) -> int:
        """Deduct the reserved points. Runs once per order."""
        with self._lock:
            key = redeem_key(order_number)
            if self._ledger.has_applied(key):
                return 0
            reservation = self._ledger.get_reservation(order_number)
            if reservation is None:
                return 0
            self._record(POINTS_REDEEMED_V1, {
                "customer_id": reservation.customer_id,
                "order_number": order_number,
                "points": reservation.points,
                "idempotency_key": key,
            })
            logger.info("Redeemed %d points for order %s", reservation.points, order_number)
            return reservation.points

    # ── Accrual ───────────────────────────────────────────────

    def credit_order_points(self, customer_id: str, order_number: str, total, tier: str) -> int:
        """
        Credit floor(total × rate) for a confirmed order, at the tier
        the customer held when the order was placed.
        """
        return self._credit(
            POINTS_EARNED_V1, earn_key(order_number), customer_id, order_number, total, tier,
        )

    def credit_delivery_bonus(self, customer_id: str, order_number: str, total) -> int:
        """One-time bonus on delivery confirmation, at the current tier."""
        return self._credit(
            DELIVERY_BONUS_CREDITED_V1, delivery_bonus_key(order_number),
            customer_id, order_number, total, None,
        )

    def _credit(self, event_type, key, customer_id, order_number, total, tier) -> int:
        with self._lock:
            if self._ledger.has_applied(key):
                logger.debug("Skipping duplicate credit %s", key)
                return 0
            before = self.account(customer_id).tier
            points = points_for(total, tier or before)
            if points <= 0:
                return 0
            self._record(event_type, {
                "customer_id": customer_id,
                "order_number": order_number,
                "points": points,
                "tier": tier or before,
                "idempotency_key": key,
            })
            after = self.account(customer_id).tier
            if after != before:
                self._record(TIER_CHANGED_V1, {
                    "customer_id": customer_id,
                    "from_tier": before,
                    "to_tier": after,
                })
                logger.info("Customer %s moved from %s to %s", customer_id, before, after)
            logger.info("Credited %d points to %s for order %s", points, customer_id, order_number)
            return points
