"""
Evolv Orders Engine — Fulfillment Scheduling
============================================
Creates the outbound shipment once an order is paid. A booking claim
(status scheduling) is written before the carrier is called.

Carrier failure never rolls back a confirmed payment. Transient
failures leave the order in retry_pending for the shipment sweep;
permanent failures (or too many attempts) park it in
manual_intervention and are logged at ERROR for an operator.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from typing import Callable, List

from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockRegistry
from core.errors import ExternalServiceError, NotFoundError
from core.events import DomainEvent, EventBus
from core.resilience import RetryPolicy, call_with_retry
from core.time import Clock, SystemClock
from engines.orders.events import (
    SHIPMENT_CREATED_V1,
    SHIPMENT_MANUAL_INTERVENTION_V1,
    SHIPMENT_RETRY_PENDING_V1,
    order_payload,
)
from engines.orders.model import (
    FULFILLMENT_CREATED,
    FULFILLMENT_MANUAL,
    FULFILLMENT_RETRY_PENDING,
    FULFILLMENT_SCHEDULING,
    ORDER_CANCELLED,
    PAYMENT_PAID,
    Order,
)
from engines.orders.repository import OrderRepository
from engines.orders.services import order_lock_key
from integration.carrier import ShipmentRequest

logger = logging.getLogger("evolv.orders")

MAX_SCHEDULE_ATTEMPTS = 5


def shipment_request_for(order: Order) -> ShipmentRequest:
    address = order.shipping_address
    return ShipmentRequest(
        reference=order.order_number,
        name=address.full_name,
        phone=address.phone,
        street=address.street,
        city=address.city,
        state=address.state,
        pincode=address.zip_code,
        declared_value=order.total,
        products_desc=" | ".join(f"{i.name} ({i.size}) x{i.quantity}" for i in order.items),
        invoice_number=order.order_number,
        invoice_date=order.created_at.date().isoformat(),
    )


class FulfillmentService:

    def __init__(
        self,
        repository: OrderRepository,
        carrier,
        *,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        max_attempts: int = MAX_SCHEDULE_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._orders = repository
        self._carrier = carrier
        self._bus = event_bus or EventBus()
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockRegistry()
        self._retry = retry_policy or RetryPolicy()
        self._max_attempts = max_attempts
        self._sleep = sleep

    def _get(self, order_number: str) -> Order:
        order = self._orders.get(order_number)
        if order is None:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "FulfillmentService",
            )
        return order

    def _publish(self, event_type: str, order: Order, **extra) -> None:
        self._bus.publish(DomainEvent(
            event_type=event_type,
            subject_id=order.order_number,
            occurred_at=self._clock.now_utc(),
            payload=order_payload(order, **extra),
        ))

    def schedule(self, order_number: str) -> Order:
        """
        Create the shipment for a paid order. Returns the latest snapshot.

        A booking claim is written under the order lock before the carrier
        is called, so concurrent schedulers book at most one shipment. A
        caller that finds a live claim returns without booking.
        """
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            now = self._clock.now_utc()
            if order.fulfillment.status == FULFILLMENT_CREATED:
                return order
            if order.fulfillment.claim_is_live(now):
                logger.info("Shipment for order %s is already being booked", order_number)
                return order
            if order.payment.status != PAYMENT_PAID or order.status == ORDER_CANCELLED:
                logger.info("Order %s is not shippable (%s/%s)",
                            order_number, order.status, order.payment.status)
                return order
            if order.fulfillment.status == FULFILLMENT_SCHEDULING:
                logger.warning("Taking over stale shipment claim for order %s", order_number)
            token = uuid.uuid4().hex
            order = self._orders.save(
                replace(order, fulfillment=replace(
                    order.fulfillment, status=FULFILLMENT_SCHEDULING, claim_token=token, claimed_at=now,
                )),
                order.version,
            )
            request = shipment_request_for(order)

        try:
            result = call_with_retry(
                lambda: self._carrier.create_shipment(request),
                self._retry,
                operation=f"shipment for {order_number}",
                sleep=self._sleep,
            )
        except ExternalServiceError as exc:
            return self._record_failure(order_number, token, exc)

        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            if order.fulfillment.claim_token != token:
                logger.error(
                    "Shipment %s for order %s was booked under a lost claim; cancel it with the carrier",
                    result.awb, order_number,
                )
                return order
            updated = replace(
                order,
                fulfillment=replace(
                    order.fulfillment,
                    status=FULFILLMENT_CREATED,
                    shipment_id=result.shipment_id,
                    awb=result.awb,
                    tracking_url=result.tracking_url,
                    attempts=order.fulfillment.attempts + 1,
                    last_error=None,
                    claim_token=None,
                    claimed_at=None,
                ),
            ).with_entry(f"Shipment booked. Tracking number {result.awb}.", self._clock.now_utc())
            saved = self._orders.save(updated, order.version)

        logger.info("Shipment %s created for order %s", result.awb, order_number)
        self._publish(SHIPMENT_CREATED_V1, saved, awb=result.awb, tracking_url=result.tracking_url)
        return saved

    def _record_failure(self, order_number: str, token: str, exc: ExternalServiceError) -> Order:
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            if order.fulfillment.claim_token != token:
                return order
            attempts = order.fulfillment.attempts + 1
            permanent = exc.code != ReasonCode.RETRIES_EXHAUSTED
            status = FULFILLMENT_MANUAL if permanent or attempts >= self._max_attempts else FULFILLMENT_RETRY_PENDING
            saved = self._orders.save(
                replace(order, fulfillment=replace(
                    order.fulfillment,
                    status=status,
                    attempts=attempts,
                    last_error=str(exc),
                    claim_token=None,
                    claimed_at=None,
                )),
                order.version,
            )

        if status == FULFILLMENT_MANUAL:
            logger.error(
                "Shipment for paid order %s needs manual intervention after %d attempt(s): %s",
                order_number, attempts, exc,
            )
            self._publish(SHIPMENT_MANUAL_INTERVENTION_V1, saved, error=str(exc))
        else:
            logger.warning("Shipment for order %s will be retried: %s", order_number, exc)
            self._publish(SHIPMENT_RETRY_PENDING_V1, saved, error=str(exc))
        return saved

    def retry_shipment(self, order_number: str) -> Order:
        """Operator or sweep retry. No-op once a shipment exists."""
        order = self._get(order_number)
        if order.fulfillment.status == FULFILLMENT_CREATED:
            return order
        return self.schedule(order_number)

    def retry_pending_shipments(self) -> List[str]:
        """Retry retry_pending shipments and take over expired booking claims."""
        now = self._clock.now_utc()
        retried = []
        for order in self._orders.all():
            fulfillment = order.fulfillment
            stale_claim = fulfillment.status == FULFILLMENT_SCHEDULING and not fulfillment.claim_is_live(now)
            if fulfillment.status != FULFILLMENT_RETRY_PENDING and not stale_claim:
                continue
            updated = self.retry_shipment(order.order_number)
            if updated.fulfillment.status == FULFILLMENT_CREATED:
                retried.append(order.order_number)
        return retried
