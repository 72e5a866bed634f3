"""
Evolv Exchange Engine — Service
===============================
Customer submission, admin decision and the carrier logistics that
follow an approval.

One open request per order: submission holds the order's lock while it
checks for an existing non-rejected request and adds the new one, so
two concurrent submissions leave exactly one request.

Carrier and refund calls are made between lock holds. A failed pickup
or replacement shipment parks the request in *_failed for
retry_logistics(); the admin decision itself is never undone.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from core.commands import evaluate_policies
from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockRegistry
from core.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError, error_for
from core.events import DomainEvent, EventBus
from core.primitives.money import money_str
from core.resilience import RetryPolicy, call_with_retry
from core.time import Clock, SystemClock
from engines.exchange.commands import (
    ApproveExchangeRequest,
    MarkReverseReceivedRequest,
    RejectExchangeRequest,
    RequestedItem,
    SubmitExchangeRequest,
)
from engines.exchange.events import (
    EXCHANGE_APPROVED_V1,
    EXCHANGE_PICKUP_FAILED_V1,
    EXCHANGE_PICKUP_SCHEDULED_V1,
    EXCHANGE_RECEIVED_V1,
    EXCHANGE_REFUND_INITIATED_V1,
    EXCHANGE_REJECTED_V1,
    EXCHANGE_REPLACEMENT_FAILED_V1,
    EXCHANGE_REPLACEMENT_SHIPPED_V1,
    EXCHANGE_REQUESTED_V1,
    exchange_payload,
)
from engines.exchange.model import (
    EXCHANGE_APPROVED,
    EXCHANGE_PENDING,
    EXCHANGE_REJECTED,
    EXCHANGE_WINDOW,
    LOGISTICS_NOT_STARTED,
    LOGISTICS_PICKUP_FAILED,
    LOGISTICS_PICKUP_SCHEDULED,
    LOGISTICS_RECEIVED,
    LOGISTICS_REFUND_INITIATED,
    LOGISTICS_REPLACEMENT_FAILED,
    LOGISTICS_REPLACEMENT_SHIPPED,
    Eligibility,
    ExchangeItem,
    ExchangeRequest,
)
from engines.exchange.policies import (
    APPROVE_POLICIES,
    RECEIVE_POLICIES,
    REJECT_POLICIES,
    SUBMIT_POLICIES,
)
from engines.exchange.repository import ExchangeRepository
from engines.orders.model import Order
from engines.orders.refunds import RefundService
from engines.orders.repository import OrderRepository
from engines.orders.services import order_lock_key
from integration.carrier import ShipmentRequest

logger = logging.getLogger("evolv.exchange")


def exchange_lock_key(exchange_id: str) -> str:
    return f"exchange:{exchange_id}"


def select_items(order: Order, requested: Tuple[RequestedItem, ...]) -> Tuple[ExchangeItem, ...]:
    """Resolve requested lines against the order. Nothing requested = everything."""
    if not requested:
        return tuple(
            ExchangeItem(i.product_id, i.name, i.size, i.color, i.unit_price, i.quantity)
            for i in order.items
        )
    selected = []
    for wanted in requested:
        line = next(
            (
                i for i in order.items
                if i.product_id == wanted.product_id
                and (not wanted.size or i.size == wanted.size)
                and (not wanted.color or i.color == wanted.color)
            ),
            None,
        )
        if line is None:
            raise ValidationError.build(
                ReasonCode.INVALID_REQUEST,
                f"Product {wanted.product_id} is not part of order {order.order_number}.",
                "select_items",
            )
        quantity = line.quantity if wanted.quantity is None else wanted.quantity
        if quantity < 1 or quantity > line.quantity:
            raise ValidationError.build(
                ReasonCode.INVALID_REQUEST,
                f"Quantity for {wanted.product_id} must be between 1 and {line.quantity}.",
                "select_items",
            )
        selected.append(ExchangeItem(
            line.product_id, line.name, line.size, line.color, line.unit_price, quantity, wanted.note,
        ))
    return tuple(selected)


class ExchangeService:

    def __init__(
        self,
        repository: ExchangeRepository,
        orders: OrderRepository,
        carrier,
        refunds: RefundService,
        *,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._exchanges = repository
        self._orders = orders
        self._carrier = carrier
        self._refunds = refunds
        self._bus = event_bus or EventBus()
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockRegistry()
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    # ── Internals ─────────────────────────────────────────────

    def _get(self, exchange_id: str) -> ExchangeRequest:
        exchange = self._exchanges.get(exchange_id)
        if exchange is None:
            raise NotFoundError.build(
                ReasonCode.EXCHANGE_NOT_FOUND, f"Exchange request {exchange_id} not found.", "ExchangeService",
            )
        return exchange

    def _order(self, order_number: str) -> Order:
        order = self._orders.get(order_number)
        if order is None:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "ExchangeService",
            )
        return order

    def _publish(self, event_type: str, exchange: ExchangeRequest, **extra) -> None:
        self._bus.publish(DomainEvent(
            event_type=event_type,
            subject_id=exchange.exchange_id,
            occurred_at=self._clock.now_utc(),
            payload=exchange_payload(exchange, self._orders.get(exchange.order_number), **extra),
        ))

    def _shipment_request(self, exchange: ExchangeRequest, *, reverse: bool) -> ShipmentRequest:
        order = self._order(exchange.order_number)
        address = order.shipping_address
        return ShipmentRequest(
            reference=f"{exchange.exchange_id}-{'R' if reverse else 'F'}",
            name=address.full_name,
            phone=address.phone,
            street=address.street,
            city=address.city,
            state=address.state,
            pincode=address.zip_code,
            declared_value=exchange.items_value,
            products_desc=" | ".join(f"{i.name} ({i.size}) x{i.quantity}" for i in exchange.items),
            invoice_number=order.order_number,
            invoice_date=order.created_at.date().isoformat(),
            is_reverse=reverse,
        )

    # ── Queries ───────────────────────────────────────────────

    def get(self, exchange_id: str, customer_id: Optional[str] = None) -> ExchangeRequest:
        exchange = self._get(exchange_id)
        if customer_id is not None and exchange.customer_id != customer_id:
            raise NotFoundError.build(
                ReasonCode.EXCHANGE_NOT_FOUND, f"Exchange request {exchange_id} not found.", "get",
            )
        return exchange

    def for_customer(self, customer_id: str) -> List[ExchangeRequest]:
        return self._exchanges.for_customer(customer_id)

    def check_eligibility(self, order_number: str, customer_id: Optional[str] = None) -> Eligibility:
        order = self._order(order_number)
        if customer_id is not None and order.customer_id != customer_id:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "check_eligibility",
            )
        command = SubmitExchangeRequest(
            order_number=order_number,
            customer_id=order.customer_id,
            reason="eligibility check",
            issued_at=self._clock.now_utc(),
        ).to_command()
        window_ends_at = order.delivered_at + EXCHANGE_WINDOW if order.delivered_at else None
        reason = evaluate_policies(command, order, SUBMIT_POLICIES)
        if reason is not None:
            return Eligibility(False, reason.message, order.delivered_at, window_ends_at)
        if self._exchanges.open_for_order(order_number) is not None:
            return Eligibility(False, "Exchange request already submitted.", order.delivered_at, window_ends_at)
        return Eligibility(True, "", order.delivered_at, window_ends_at)

    # ── Customer ──────────────────────────────────────────────

    def submit(self, request: SubmitExchangeRequest) -> ExchangeRequest:
        command = request.to_command()
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._order(request.order_number)
            reason = evaluate_policies(command, order, SUBMIT_POLICIES)
            if reason is not None:
                raise error_for(reason, order.state_summary())

            existing = self._exchanges.open_for_order(order.order_number)
            if existing is not None:
                logger.info("Duplicate exchange request for order %s refused", order.order_number)
                raise ConflictError.build(
                    ReasonCode.EXCHANGE_ALREADY_OPEN,
                    "An exchange request already exists for this order.",
                    "submit",
                    current_state=existing.state_summary(),
                )

            now = self._clock.now_utc()
            exchange = ExchangeRequest(
                exchange_id=self._exchanges.next_id(),
                order_number=order.order_number,
                customer_id=order.customer_id,
                items=select_items(order, request.items),
                reason=request.reason.strip(),
                requested_at=now,
                evidence_images=request.evidence_images,
            ).logged(EXCHANGE_PENDING, "Request submitted by customer.", now, request.customer_id)
            exchange = self._exchanges.add(exchange)

        logger.info("Exchange %s requested for order %s", exchange.exchange_id, exchange.order_number)
        self._publish(EXCHANGE_REQUESTED_V1, exchange)
        return exchange

    # ── Admin decision ────────────────────────────────────────

    def approve(self, request: ApproveExchangeRequest) -> ExchangeRequest:
        command = request.to_command()
        with self._locks.hold(exchange_lock_key(request.exchange_id)):
            exchange = self._get(request.exchange_id)
            reason = evaluate_policies(command, exchange, APPROVE_POLICIES)
            if reason is not None:
                raise error_for(reason, exchange.state_summary())
            approved = replace(
                exchange.decide(EXCHANGE_APPROVED, "Approved by admin.", self._clock.now_utc(), request.admin_id),
                with_replacement=request.with_replacement,
            )
            approved = self._exchanges.save(approved, exchange.version)

        logger.info("Exchange %s approved by %s", approved.exchange_id, request.admin_id)
        self._publish(EXCHANGE_APPROVED_V1, approved)
        return self.schedule_reverse_pickup(approved.exchange_id)

    def reject(self, request: RejectExchangeRequest) -> ExchangeRequest:
        command = request.to_command()
        with self._locks.hold(exchange_lock_key(request.exchange_id)):
            exchange = self._get(request.exchange_id)
            reason = evaluate_policies(command, exchange, REJECT_POLICIES)
            if reason is not None:
                raise error_for(reason, exchange.state_summary())
            text = request.reason.strip()
            rejected = replace(
                exchange.decide(EXCHANGE_REJECTED, text, self._clock.now_utc(), request.admin_id),
                rejection_reason=text,
            )
            rejected = self._exchanges.save(rejected, exchange.version)

        logger.info("Exchange %s rejected by %s", rejected.exchange_id, request.admin_id)
        self._publish(EXCHANGE_REJECTED_V1, rejected)
        return rejected

    # ── Logistics ─────────────────────────────────────────────

    def _book(self, exchange_id: str, *, reverse: bool, ready_states: Tuple[str, ...]) -> ExchangeRequest:
        with self._locks.hold(exchange_lock_key(exchange_id)):
            exchange = self._get(exchange_id)
            if exchange.status != EXCHANGE_APPROVED or exchange.logistics not in ready_states:
                return exchange
            request = self._shipment_request(exchange, reverse=reverse)

        book = self._carrier.create_reverse_pickup if reverse else self._carrier.create_shipment
        label = "reverse pickup" if reverse else "replacement shipment"
        failed_state = LOGISTICS_PICKUP_FAILED if reverse else LOGISTICS_REPLACEMENT_FAILED
        try:
            result = call_with_retry(
                lambda: book(request),
                self._retry,
                operation=f"{label} for exchange {exchange_id}",
                sleep=self._sleep,
            )
        except ExternalServiceError as exc:
            with self._locks.hold(exchange_lock_key(exchange_id)):
                exchange = self._get(exchange_id)
                if exchange.logistics != failed_state:
                    exchange = self._exchanges.save(
                        exchange.advance(failed_state, f"The {label} could not be booked.", self._clock.now_utc()),
                        exchange.version,
                    )
            logger.error("Could not book %s for exchange %s: %s", label, exchange_id, exc)
            self._publish(
                EXCHANGE_PICKUP_FAILED_V1 if reverse else EXCHANGE_REPLACEMENT_FAILED_V1,
                exchange,
                error=str(exc),
            )
            return exchange

        with self._locks.hold(exchange_lock_key(exchange_id)):
            exchange = self._get(exchange_id)
            if reverse:
                booked = replace(
                    exchange.advance(
                        LOGISTICS_PICKUP_SCHEDULED,
                        f"Reverse pickup scheduled. Tracking number {result.awb}.",
                        self._clock.now_utc(),
                    ),
                    reverse_awb=result.awb,
                )
            else:
                booked = replace(
                    exchange.advance(
                        LOGISTICS_REPLACEMENT_SHIPPED,
                        f"Replacement shipped. Tracking number {result.awb}.",
                        self._clock.now_utc(),
                    ),
                    forward_awb=result.awb,
                )
            booked = self._exchanges.save(booked, exchange.version)

        logger.info("Booked %s %s for exchange %s", label, result.awb, exchange_id)
        self._publish(
            EXCHANGE_PICKUP_SCHEDULED_V1 if reverse else EXCHANGE_REPLACEMENT_SHIPPED_V1,
            booked,
            awb=result.awb,
        )
        return booked

    def schedule_reverse_pickup(self, exchange_id: str) -> ExchangeRequest:
        return self._book(
            exchange_id, reverse=True, ready_states=(LOGISTICS_NOT_STARTED, LOGISTICS_PICKUP_FAILED),
        )

    def mark_reverse_received(self, request: MarkReverseReceivedRequest) -> ExchangeRequest:
        """The original item is back: ship the replacement or refund its value."""
        command = request.to_command()
        with self._locks.hold(exchange_lock_key(request.exchange_id)):
            exchange = self._get(request.exchange_id)
            reason = evaluate_policies(command, exchange, RECEIVE_POLICIES)
            if reason is not None:
                raise error_for(reason, exchange.state_summary())
            received = self._exchanges.save(
                exchange.advance(LOGISTICS_RECEIVED, "Returned item received.", self._clock.now_utc(), request.admin_id),
                exchange.version,
            )

        self._publish(EXCHANGE_RECEIVED_V1, received)
        return self._complete(received)

    def _complete(self, exchange: ExchangeRequest) -> ExchangeRequest:
        if exchange.with_replacement:
            return self._book(
                exchange.exchange_id,
                reverse=False,
                ready_states=(LOGISTICS_RECEIVED, LOGISTICS_REPLACEMENT_FAILED),
            )
        return self._refund(exchange.exchange_id)

    def _refund(self, exchange_id: str) -> ExchangeRequest:
        exchange = self._get(exchange_id)
        if exchange.logistics != LOGISTICS_RECEIVED:
            return exchange
        order = self._order(exchange.order_number)
        amount = min(exchange.items_value, order.total)
        self._refunds.refund_order(
            exchange.order_number,
            amount=amount,
            reason=f"Exchange {exchange_id}: item returned without replacement",
            requested_by="system",
        )

        with self._locks.hold(exchange_lock_key(exchange_id)):
            exchange = self._get(exchange_id)
            refunded = replace(
                exchange.advance(
                    LOGISTICS_REFUND_INITIATED,
                    f"Refund of ₹{money_str(amount)} initiated.",
                    self._clock.now_utc(),
                ),
                refund_amount=amount,
            )
            refunded = self._exchanges.save(refunded, exchange.version)

        logger.info("Refund of %s initiated for exchange %s", money_str(amount), exchange_id)
        self._publish(EXCHANGE_REFUND_INITIATED_V1, refunded, refund_amount=money_str(amount))
        return refunded

    def retry_logistics(self, exchange_id: str) -> ExchangeRequest:
        """Operator retry for whichever logistics step last failed."""
        exchange = self._get(exchange_id)
        if exchange.logistics in (LOGISTICS_NOT_STARTED, LOGISTICS_PICKUP_FAILED):
            return self.schedule_reverse_pickup(exchange_id)
        if exchange.logistics in (LOGISTICS_RECEIVED, LOGISTICS_REPLACEMENT_FAILED):
            return self._complete(exchange)
        return exchange


__all__ = [
    "ExchangeService",
    "exchange_lock_key",
    "select_items",
]
