"""
Evolv Orders Engine — Refunds
=============================
Refund sub-state on an order's payment record:

    initiated → processing → completed
                    ↘ failed → (after a cool-down) initiated

Only a gateway refund reported "processed" may mark a refund completed.
completed records amount and completion time and moves payment.status
to refunded. A completed refund is returned as-is; an in-flight one is
re-polled instead of issued twice.
Refund creation is never retried automatically; status polling is.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Optional

from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockRegistry
from core.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from core.events import DomainEvent, EventBus
from core.primitives.money import ZERO, money_str, round_money, to_decimal
from core.resilience import NO_RETRY, RetryPolicy, call_with_retry
from core.time import Clock, SystemClock, has_elapsed
from engines.orders.events import (
    REFUND_COMPLETED_V1,
    REFUND_FAILED_V1,
    REFUND_INITIATED_V1,
    order_payload,
)
from engines.orders.model import (
    ORDER_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    REFUND_COMPLETED,
    REFUND_FAILED,
    REFUND_INITIATED,
    REFUND_PROCESSING,
    Order,
    RefundRecord,
)
from engines.orders.repository import OrderRepository
from engines.orders.services import order_lock_key

logger = logging.getLogger("evolv.refunds")

REFUND_RETRY_COOLDOWN = timedelta(hours=1)


def refundable_payment_id(order: Order) -> Optional[str]:
    """The captured payment a refund would go against, if any."""
    if order.payment.status in (PAYMENT_PAID, PAYMENT_REFUNDED):
        return order.payment.transaction_id
    if order.status == ORDER_CANCELLED and order.late_payment_id:
        return order.late_payment_id
    return None


def default_refund_amount(order: Order, deduct_shipping: bool = False) -> Decimal:
    amount = order.total
    if deduct_shipping:
        amount = amount - order.pricing.shipping_cost
    return round_money(amount)


class RefundService:

    def __init__(
        self,
        repository: OrderRepository,
        gateway,
        *,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._orders = repository
        self._gateway = gateway
        self._bus = event_bus or EventBus()
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockRegistry()
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    def _get(self, order_number: str) -> Order:
        order = self._orders.get(order_number)
        if order is None:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "RefundService",
            )
        return order

    def _publish(self, event_type: str, order: Order) -> None:
        refund = order.payment.refund
        self._bus.publish(DomainEvent(
            event_type=event_type,
            subject_id=order.order_number,
            occurred_at=self._clock.now_utc(),
            payload=order_payload(
                order,
                refund_amount=money_str(refund.amount),
                refund_status=refund.status,
            ),
        ))

    # ── Commands ──────────────────────────────────────────────

    def refund_order(
        self,
        order_number: str,
        *,
        amount=None,
        deduct_shipping: bool = False,
        reason: str = "",
        requested_by: str = "admin",
    ) -> Order:
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            refund = order.payment.refund
            if refund is not None and refund.status == REFUND_COMPLETED:
                return order
            in_flight = refund is not None and refund.status in (REFUND_INITIATED, REFUND_PROCESSING)
            if in_flight and not refund.refund_id:
                raise ConflictError.build(
                    ReasonCode.REFUND_NOT_ALLOWED,
                    f"A refund for order {order_number} is already being requested.",
                    "refund_order",
                    current_state=order.state_summary(),
                )
            if not in_flight:
                order = self._start(order, amount, deduct_shipping, reason, requested_by)

        if in_flight:
            return self.refresh(order_number)

        refund = order.payment.refund
        payment_id = refundable_payment_id(order)
        self._publish(REFUND_INITIATED_V1, order)
        try:
            result = call_with_retry(
                lambda: self._gateway.create_refund(
                    payment_id, refund.amount, notes={"order_number": order_number, "reason": refund.reason},
                ),
                NO_RETRY,
                operation=f"refund for {order_number}",
                sleep=self._sleep,
            )
        except ExternalServiceError as exc:
            self._record_failure(order_number, str(exc))
            raise
        return self._apply_gateway_refund(order_number, result)

    def _start(self, order: Order, amount, deduct_shipping: bool, reason: str, requested_by: str) -> Order:
        """Under lock: validate and persist the initiated refund."""
        if refundable_payment_id(order) is None:
            raise ConflictError.build(
                ReasonCode.REFUND_NOT_ALLOWED,
                f"Order {order.order_number} has no captured payment to refund.",
                "refund_order",
                current_state=order.state_summary(),
            )
        now = self._clock.now_utc()
        previous = order.payment.refund
        if previous is not None and previous.status == REFUND_FAILED and not has_elapsed(
            previous.last_attempt_at, REFUND_RETRY_COOLDOWN, now,
        ):
            raise ConflictError.build(
                ReasonCode.REFUND_RETRY_TOO_SOON,
                "The last refund attempt failed recently. Try again later.",
                "refund_order",
                current_state=order.state_summary(),
            )

        value = default_refund_amount(order, deduct_shipping) if amount is None else round_money(to_decimal(amount))
        if value <= ZERO or value > order.total:
            raise ValidationError.build(
                ReasonCode.REFUND_INVALID_AMOUNT,
                f"Refund amount must be greater than 0 and at most {money_str(order.total)}.",
                "refund_order",
            )

        record = RefundRecord(
            status=REFUND_INITIATED,
            amount=value,
            reason=reason or "Refund requested",
            initiated_at=previous.initiated_at if previous else now,
            last_attempt_at=now,
            attempts=(previous.attempts + 1) if previous else 1,
        )
        updated = replace(order, payment=replace(order.payment, refund=record)).with_entry(
            f"Refund of ₹{money_str(value)} initiated.", now, requested_by,
        )
        saved = self._orders.save(updated, order.version)
        logger.info("Refund of %s initiated for order %s", money_str(value), order.order_number)
        return saved

    def _record_failure(self, order_number: str, message: str) -> Order:
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            refund = order.payment.refund.advance(
                REFUND_FAILED,
                error_message=message,
                last_attempt_at=self._clock.now_utc(),
            )
            saved = self._orders.save(
                replace(order, payment=replace(order.payment, refund=refund)), order.version,
            )
        logger.error("Refund for order %s failed: %s", order_number, message)
        self._publish(REFUND_FAILED_V1, saved)
        return saved

    def _apply_gateway_refund(self, order_number: str, result) -> Order:
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            refund = order.payment.refund
            if refund.status == REFUND_COMPLETED:
                return order
            now = self._clock.now_utc()
            if refund.status == REFUND_INITIATED:
                refund = refund.advance(REFUND_PROCESSING, refund_id=result.refund_id)
            if not result.is_processed:
                saved = self._orders.save(
                    replace(order, payment=replace(order.payment, refund=refund)), order.version,
                )
                logger.info("Refund %s for order %s is %s", result.refund_id, order_number, result.status)
                return saved

            refund = refund.advance(
                REFUND_COMPLETED,
                refund_id=result.refund_id,
                amount=result.amount,
                completed_at=now,
                error_message=None,
            )
            payment_status = PAYMENT_REFUNDED if order.payment.status == PAYMENT_PAID else order.payment.status
            completed = replace(
                order,
                payment=replace(order.payment, status=payment_status, refund=refund),
            ).with_entry(f"Refund of ₹{money_str(refund.amount)} completed.", now, "gateway")
            saved = self._orders.save(completed, order.version)

        logger.info("Refund %s completed for order %s", result.refund_id, order_number)
        self._publish(REFUND_COMPLETED_V1, saved)
        return saved

    def refresh(self, order_number: str) -> Order:
        """Re-poll an in-flight refund."""
        order = self._get(order_number)
        refund = order.payment.refund
        if refund is None or refund.status not in (REFUND_INITIATED, REFUND_PROCESSING) or not refund.refund_id:
            return order
        result = call_with_retry(
            lambda: self._gateway.fetch_refund(refundable_payment_id(order), refund.refund_id),
            self._retry,
            operation=f"refund status for {order_number}",
            sleep=self._sleep,
        )
        return self._apply_gateway_refund(order_number, result)
