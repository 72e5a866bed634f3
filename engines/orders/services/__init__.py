"""
Evolv Orders Engine — Lifecycle Service
=======================================
Owns every order transition. Single writer per order:

    1. take the order's lock
    2. re-read the snapshot
    3. evaluate policies, build the next snapshot
    4. save with the version that was read (compare-and-set)
    5. release the lock, then publish events

Gateway and carrier calls happen between lock holds, never inside one.
Every command returns the post-transition Order so callers can
reconcile against authoritative state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from core.commands import evaluate_policies
from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockRegistry
from core.errors import (
    ConflictError,
    ExpiredError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
    error_for,
)
from core.events import DomainEvent, EventBus
from core.primitives.money import ZERO, to_minor_units
from core.resilience import RetryPolicy, call_with_retry
from core.time import Clock, SystemClock
from engines.discount import DiscountResolver, DiscountSelection, PromoCodeStore
from engines.loyalty import LoyaltyService, points_for
from engines.orders.catalog import Catalog, check_line_item
from engines.orders.commands import (
    CancelOrderRequest,
    ConfirmDeliveryRequest,
    ConfirmPaymentRequest,
    ExpireOrderRequest,
    PlaceOrderRequest,
    RecordPaymentFailureRequest,
    UpdateOrderStatusRequest,
)
from engines.orders.events import (
    CARRIER_ANOMALY_V1,
    ORDER_CANCELLED_V1,
    ORDER_CONFIRMED_V1,
    ORDER_DELIVERED_V1,
    ORDER_PLACED_V1,
    ORDER_STATUS_CHANGED_V1,
    PAYMENT_FAILED_V1,
    PAYMENT_RECONCILIATION_REQUIRED_V1,
    order_payload,
)
from engines.orders.model import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_WORKFLOW,
    PAYMENT_FAILED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_WORKFLOW,
    Order,
    OrderDiscount,
    OrderItem,
    TimelineEntry,
)
from engines.orders.policies import (
    CANCEL_POLICIES,
    CONFIRM_DELIVERY_POLICIES,
    CONFIRM_PAYMENT_POLICIES,
    EXPIRE_POLICIES,
    STATUS_UPDATE_POLICIES,
)
from engines.orders.repository import OrderRepository
from engines.pricing import (
    CURRENCY,
    CartLineItem,
    PriceBreakdown,
    compute_breakdown,
    verify_client_total,
)

logger = logging.getLogger("evolv.orders")

STATUS_MESSAGES = {
    "processing": "Your order is being prepared.",
    "shipped": "Your order has been shipped.",
    "out_for_delivery": "Your order is out for delivery.",
    "delivered": "Your order has been delivered.",
}

SCAN_APPLIED = "applied"
SCAN_DUPLICATE = "duplicate"
SCAN_UNCHANGED = "unchanged"
SCAN_ANOMALY = "anomaly"
SCAN_IGNORED = "ignored"


def order_lock_key(order_number: str) -> str:
    return f"order:{order_number}"


@dataclass(frozen=True)
class Quote:
    breakdown: PriceBreakdown
    discount: DiscountSelection

    def to_dict(self) -> dict:
        return {"breakdown": self.breakdown.to_dict(), "discount": self.discount.to_dict()}


@dataclass(frozen=True)
class PlacedOrder:
    order: Order
    payment_session: object

    def to_dict(self) -> dict:
        return {"order": self.order.to_dict(), "payment": self.payment_session.to_dict()}


class OrderLifecycleService:

    def __init__(
        self,
        repository: OrderRepository,
        *,
        catalog: Catalog,
        discount_resolver: DiscountResolver,
        promo_store: PromoCodeStore,
        loyalty: LoyaltyService,
        gateway,
        fulfillment=None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._orders = repository
        self._catalog = catalog
        self._resolver = discount_resolver
        self._promos = promo_store
        self._loyalty = loyalty
        self._gateway = gateway
        self._fulfillment = fulfillment
        self._bus = event_bus or EventBus()
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockRegistry()
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    # ── Internals ─────────────────────────────────────────────

    def _now(self) -> datetime:
        return self._clock.now_utc()

    def _get(self, order_number: str) -> Order:
        order = self._orders.get(order_number)
        if order is None:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "OrderLifecycleService",
            )
        return order

    def _check(self, command, order: Order, policies) -> None:
        reason = evaluate_policies(command, order, policies)
        if reason is not None:
            raise error_for(reason, order.state_summary())

    def _publish(self, event_type: str, order: Order, **extra) -> None:
        self._bus.publish(DomainEvent(
            event_type=event_type,
            subject_id=order.order_number,
            occurred_at=self._now(),
            payload=order_payload(order, **extra),
        ))

    def _release_discounts(self, order: Order) -> None:
        released = self._loyalty.release(order.order_number)
        if order.discount.promo_code:
            self._promos.release(order.discount.promo_code, order.order_number)
        if released:
            logger.info("Returned %d points to %s after cancelling %s",
                        released, order.customer_id, order.order_number)

    def _cancel(self, order: Order, message: str, updated_by: str) -> Order:
        """Cancel under the caller's lock and release reserved discounts."""
        now = self._now()
        cancelled = replace(
            order.transition(ORDER_CANCELLED, message, now, updated_by),
            cancelled_at=now,
        )
        saved = self._orders.save(cancelled, order.version)
        self._release_discounts(saved)
        return saved

    # ── Queries ───────────────────────────────────────────────

    def get_order(self, order_number: str, customer_id: Optional[str] = None) -> Order:
        order = self._get(order_number)
        if customer_id is not None and order.customer_id != customer_id:
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"Order {order_number} not found.", "get_order",
            )
        return order

    def orders_for_customer(self, customer_id: str) -> List[Order]:
        return self._orders.for_customer(customer_id)

    # ── Pricing ───────────────────────────────────────────────

    def quote_cart(
        self,
        items: Iterable[CartLineItem],
        shipping_state: str,
        *,
        promo_code: Optional[str] = None,
        points: int = 0,
        customer_id: Optional[str] = None,
    ) -> Quote:
        """The one pricing path shared by checkout preview and submission."""
        items = tuple(items)
        if not items:
            raise ValidationError.build(ReasonCode.EMPTY_CART, "Cart is empty.", "quote_cart")
        subtotal = sum((i.line_total for i in items), ZERO)
        available = self._loyalty.available_points(customer_id) if customer_id else 0
        selection = self._resolver.resolve(
            promo_code=promo_code,
            points=points,
            available_balance=available,
            cart_subtotal=subtotal,
            items=items,
        )
        return Quote(breakdown=compute_breakdown(items, shipping_state, selection), discount=selection)

    # ── Placement ─────────────────────────────────────────────

    def place_order(self, request: PlaceOrderRequest) -> PlacedOrder:
        command = request.to_command()
        if not request.items:
            raise ValidationError.build(ReasonCode.EMPTY_CART, "Cart is empty.", "place_order")

        items: List[OrderItem] = []
        for line in request.items:
            product = self._catalog.get_product(line.product_id)
            reason = check_line_item(line, product)
            if reason is not None:
                logger.info("Checkout %s rejected: %s", command.command_id, reason.code)
                raise ValidationError(reason)
            items.append(OrderItem(
                product_id=line.product_id,
                name=line.name or product.name,
                size=line.size,
                color=line.color,
                unit_price=line.unit_price,
                quantity=line.quantity,
            ))

        quote = self.quote_cart(
            request.items,
            request.shipping_address.state,
            promo_code=request.promo_code,
            points=request.points_to_redeem,
            customer_id=request.customer_id,
        )
        verify_client_total(quote.breakdown, request.client_total)
        if quote.breakdown.total <= ZERO:
            raise ValidationError.build(
                ReasonCode.INVALID_POINTS,
                "Order total after discount must be greater than zero.",
                "place_order",
            )

        now = self._now()
        order_number = self._orders.next_order_number(now)
        selection = quote.discount

        if selection.promo_code:
            self._promos.reserve(selection.promo_code, order_number)
        if selection.points_to_redeem:
            try:
                self._loyalty.reserve(request.customer_id, order_number, selection.points_to_redeem)
            except ValidationError:
                if selection.promo_code:
                    self._promos.release(selection.promo_code, order_number)
                raise

        order = self._orders.add(Order(
            order_number=order_number,
            customer_id=request.customer_id,
            items=tuple(items),
            shipping_address=request.shipping_address,
            billing_address=request.billing_address or request.shipping_address,
            pricing=quote.breakdown,
            discount=OrderDiscount(
                promo_code=selection.promo_code,
                points_redeemed=selection.points_to_redeem,
                amount=selection.discount_amount,
            ),
            created_at=now,
            timeline=(TimelineEntry(ORDER_PENDING, "Order Placed", now, request.customer_id),),
            tier_at_order=self._loyalty.current_tier(request.customer_id),
        ))
        logger.info("Order %s placed by %s for %s", order_number, request.customer_id, order.total)

        try:
            session = call_with_retry(
                lambda: self._gateway.create_order(order.total, CURRENCY, order_number),
                self._retry,
                operation=f"gateway order for {order_number}",
                sleep=self._sleep,
            )
        except ExternalServiceError:
            logger.error("Could not open a payment session for %s; cancelling", order_number)
            with self._locks.hold(order_lock_key(order_number)):
                current = self._get(order_number)
                if current.status == ORDER_PENDING:
                    self._cancel(current, "Payment could not be initiated. Please try again.", "system")
            raise

        with self._locks.hold(order_lock_key(order_number)):
            current = self._get(order_number)
            order = self._orders.save(
                replace(current, payment=replace(current.payment, gateway_order_id=session.gateway_order_id)),
                current.version,
            )

        self._publish(ORDER_PLACED_V1, order)
        return PlacedOrder(order=order, payment_session=session)

    # ── Payment ───────────────────────────────────────────────

    def confirm_payment(self, request: ConfirmPaymentRequest) -> Order:
        """
        Verified gateway success callback. Replays are no-ops; a payment
        arriving after cancellation is flagged for reconciliation.
        """
        command = request.to_command()
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            if order.payment.status == PAYMENT_PAID:
                return self._duplicate_confirmation(order, request.payment_id)

        if not self._gateway.verify_payment_signature(
            request.gateway_order_id, request.payment_id, request.signature,
        ):
            logger.warning("Invalid payment signature for order %s", request.order_number)
            raise ValidationError.build(
                ReasonCode.PAYMENT_SIGNATURE_INVALID, "Invalid payment signature.", "confirm_payment",
            )

        payment = call_with_retry(
            lambda: self._gateway.fetch_payment(request.payment_id),
            self._retry,
            operation=f"payment lookup for {request.order_number}",
            sleep=self._sleep,
        )

        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            if order.payment.status == PAYMENT_PAID:
                return self._duplicate_confirmation(order, request.payment_id)

            reason = evaluate_policies(command, order, CONFIRM_PAYMENT_POLICIES)
            if reason is not None and reason.code == ReasonCode.PAYMENT_WINDOW_EXPIRED:
                order = self._cancel(
                    order, "Order cancelled: payment not received within 12 hours.", "system",
                )
                self._publish(ORDER_CANCELLED_V1, order)
            if reason is not None and reason.code in (
                ReasonCode.ORDER_CANCELLED, ReasonCode.PAYMENT_WINDOW_EXPIRED,
            ):
                flagged = self._flag_late_payment(order, request.payment_id)
                raise error_for(reason, flagged.state_summary())
            if reason is not None:
                raise error_for(reason, order.state_summary())

            if (
                payment.gateway_order_id != order.payment.gateway_order_id
                or payment.amount_minor != to_minor_units(order.total)
                or not payment.is_successful
            ):
                logger.warning(
                    "Payment %s does not match order %s (amount %s, status %s)",
                    payment.payment_id, order.order_number, payment.amount_minor, payment.status,
                )
                raise ValidationError.build(
                    ReasonCode.PAYMENT_AMOUNT_MISMATCH,
                    "Payment amount does not match the order total.",
                    "confirm_payment",
                )

            now = self._now()
            earned = points_for(order.total, order.tier_at_order)
            confirmed = replace(
                order.transition(ORDER_CONFIRMED, "Payment received. Order confirmed.", now, "gateway"),
                payment=replace(
                    order.payment,
                    status=PAYMENT_PAID,
                    transaction_id=payment.payment_id,
                    instrument=payment.method,
                    paid_at=now,
                    failure_reason=None,
                ),
                points_earned=earned,
            )
            saved = self._orders.save(confirmed, order.version)

            self._loyalty.commit_redemption(saved.order_number)
            if saved.discount.promo_code:
                self._promos.consume(saved.discount.promo_code, saved.order_number)
            self._loyalty.credit_order_points(
                saved.customer_id, saved.order_number, saved.total, saved.tier_at_order,
            )

        logger.info("Order %s paid (%s)", saved.order_number, payment.payment_id)
        self._publish(ORDER_CONFIRMED_V1, saved, points_earned=earned)

        if self._fulfillment is not None:
            return self._fulfillment.schedule(saved.order_number)
        return saved

    def _duplicate_confirmation(self, order: Order, payment_id: str) -> Order:
        if order.payment.transaction_id != payment_id:
            logger.warning(
                "Order %s already paid by %s; ignoring confirmation for %s",
                order.order_number, order.payment.transaction_id, payment_id,
            )
        else:
            logger.info("Duplicate payment confirmation for %s ignored", order.order_number)
        return order

    def _flag_late_payment(self, order: Order, payment_id: str) -> Order:
        """Under lock: a captured payment met a cancelled order."""
        if order.reconciliation_required and order.late_payment_id == payment_id:
            return order
        flagged = self._orders.save(
            replace(order, reconciliation_required=True, late_payment_id=payment_id),
            order.version,
        )
        logger.warning(
            "Payment %s arrived for cancelled order %s; manual reconciliation required",
            payment_id, order.order_number,
        )
        self._publish(PAYMENT_RECONCILIATION_REQUIRED_V1, flagged, payment_id=payment_id)
        return flagged

    def record_payment_failure(self, request: RecordPaymentFailureRequest) -> Order:
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            if (
                request.gateway_order_id
                and order.payment.gateway_order_id
                and request.gateway_order_id != order.payment.gateway_order_id
            ):
                raise ValidationError.build(
                    ReasonCode.INVALID_REQUEST,
                    "Payment failure does not belong to this order.",
                    "record_payment_failure",
                )
            if order.status != ORDER_PENDING or not PAYMENT_WORKFLOW.is_valid_transition(
                order.payment.status, PAYMENT_FAILED,
            ):
                return order

            failed = replace(
                order,
                payment=replace(order.payment, status=PAYMENT_FAILED, failure_reason=request.reason),
            ).with_entry(
                f"Payment failed: {request.reason}. You can retry payment until "
                f"{order.payment_deadline:%d %b %Y %H:%M} UTC.",
                self._now(),
                "gateway",
            )
            saved = self._orders.save(failed, order.version)

        logger.info("Payment failed for order %s: %s", saved.order_number, request.reason)
        self._publish(PAYMENT_FAILED_V1, saved, reason=request.reason)
        return saved

    # ── Cancellation ──────────────────────────────────────────

    def cancel_order(self, request: CancelOrderRequest) -> Order:
        command = request.to_command()
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            self._check(command, order, CANCEL_POLICIES)
            message = "Order cancelled by customer."
            if request.reason:
                message = f"Order cancelled by customer: {request.reason}"
            saved = self._cancel(order, message, request.customer_id)

        logger.info("Order %s cancelled by customer", saved.order_number)
        self._publish(ORDER_CANCELLED_V1, saved)
        return saved

    def expire_if_unpaid(self, order_number: str) -> Optional[Order]:
        """Cancel an order whose payment window has elapsed. None if not eligible."""
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            command = ExpireOrderRequest(order_number=order_number, issued_at=self._now()).to_command()
            if evaluate_policies(command, order, EXPIRE_POLICIES) is not None:
                return None
            saved = self._cancel(order, "Order cancelled: payment not received within 12 hours.", "system")

        logger.info("Order %s expired unpaid", order_number)
        self._publish(ORDER_CANCELLED_V1, saved)
        return saved

    # ── Fulfillment progress ──────────────────────────────────

    def _advance(self, order: Order, status: str, message: str, updated_by: str) -> Order:
        now = self._now()
        advanced = order.transition(status, message or STATUS_MESSAGES[status], now, updated_by)
        if advanced.fulfillment.needs_attention:
            advanced = replace(advanced, fulfillment=replace(
                advanced.fulfillment, needs_attention=False, attention_reason=None,
            ))
        if status == ORDER_DELIVERED:
            advanced = replace(advanced, delivered_at=now)
        return advanced

    def _published_after_advance(self, order: Order, previous_status: str) -> None:
        self._publish(ORDER_STATUS_CHANGED_V1, order, previous_status=previous_status)
        if order.status == ORDER_DELIVERED:
            self._publish(ORDER_DELIVERED_V1, order)

    def update_status(self, request: UpdateOrderStatusRequest) -> Order:
        """Forward-only update from an admin or the carrier."""
        command = request.to_command()
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            if order.status == request.status:
                return order
            reason = evaluate_policies(command, order, STATUS_UPDATE_POLICIES)
            if reason is not None:
                logger.warning(
                    "Rejected %s update for order %s: %s → %s",
                    request.source, order.order_number, order.status, request.status,
                )
                raise error_for(reason, order.state_summary())
            saved = self._orders.save(
                self._advance(order, request.status, request.message, request.actor_id),
                order.version,
            )

        self._published_after_advance(saved, order.status)
        return saved

    def apply_carrier_scan(
        self,
        order_number: str,
        *,
        raw_status: str,
        mapped_status: Optional[str],
        anomaly: bool = False,
        payload_hash: Optional[str] = None,
    ) -> Tuple[Order, str]:
        """
        Apply one carrier scan. Returns (order, outcome).

        A scan that would skip shipped or reverse the lifecycle raises
        ConflictError(OUT_OF_ORDER_EVENT). The order status and timeline
        stay as they were; the fulfillment record is flagged for an
        operator and a carrier anomaly event is published.
        """
        rejected = None
        with self._locks.hold(order_lock_key(order_number)):
            order = self._get(order_number)
            if payload_hash and payload_hash in order.processed_webhooks:
                logger.info("Duplicate carrier webhook for %s ignored", order_number)
                return order, SCAN_DUPLICATE

            now = self._now()
            target = order
            outcome = SCAN_IGNORED
            if anomaly:
                outcome = SCAN_ANOMALY
                logger.warning("Carrier anomaly for order %s: %s", order_number, raw_status)
            elif mapped_status is not None and mapped_status == order.status:
                outcome = SCAN_UNCHANGED
            elif mapped_status is not None:
                if order.status == ORDER_CANCELLED or not ORDER_WORKFLOW.is_valid_transition(
                    order.status, mapped_status,
                ):
                    logger.warning(
                        "Out-of-order carrier event for order %s: %s → %s (%s)",
                        order_number, order.status, mapped_status, raw_status,
                    )
                    rejected = ConflictError.build(
                        ReasonCode.OUT_OF_ORDER_EVENT,
                        f"Order {order_number} cannot move from {order.status} to {mapped_status}.",
                        "apply_carrier_scan",
                        current_state=order.state_summary(),
                    )
                    saved, newly_flagged = self._flag_out_of_order(order, raw_status, mapped_status, now)
                else:
                    target = self._advance(order, mapped_status, "", "carrier")
                    outcome = SCAN_APPLIED

            if rejected is None:
                hashes = order.processed_webhooks | {payload_hash} if payload_hash else order.processed_webhooks
                target = replace(
                    target,
                    fulfillment=replace(target.fulfillment, carrier_status=raw_status, last_synced_at=now),
                    processed_webhooks=hashes,
                )
                saved = self._orders.save(target, order.version)

        if rejected is not None:
            if newly_flagged:
                self._publish(
                    CARRIER_ANOMALY_V1, saved,
                    carrier_status=raw_status, rejected_status=mapped_status,
                )
            raise rejected
        if outcome == SCAN_APPLIED:
            self._published_after_advance(saved, order.status)
        elif outcome == SCAN_ANOMALY:
            self._publish(CARRIER_ANOMALY_V1, saved, carrier_status=raw_status)
        return saved, outcome

    def _flag_out_of_order(
        self, order: Order, raw_status: str, mapped_status: str, now: datetime,
    ) -> Tuple[Order, bool]:
        """Mark the fulfillment for manual handling. Returns (order, newly_flagged)."""
        reason = f"Carrier reported {raw_status!r} ({mapped_status}) while the order was {order.status}."
        fulfillment = order.fulfillment
        newly_flagged = not (fulfillment.needs_attention and fulfillment.attention_reason == reason)
        flagged = replace(order, fulfillment=replace(
            fulfillment,
            carrier_status=raw_status,
            last_synced_at=now,
            needs_attention=True,
            attention_reason=reason,
        ))
        return self._orders.save(flagged, order.version), newly_flagged

    # ── Delivery confirmation ─────────────────────────────────

    def confirm_delivery(self, request: ConfirmDeliveryRequest) -> Order:
        """
        Customer confirms receipt. Awards the delivery bonus exactly once,
        including on an order the carrier already marked delivered.
        """
        command = request.to_command()
        with self._locks.hold(order_lock_key(request.order_number)):
            order = self._get(request.order_number)
            self._check(command, order, CONFIRM_DELIVERY_POLICIES)

            updated = order
            if order.status != ORDER_DELIVERED:
                updated = self._advance(order, ORDER_DELIVERED, "Delivery confirmed by customer.", request.customer_id)
            if not updated.delivery_bonus_awarded:
                bonus = self._loyalty.credit_delivery_bonus(order.customer_id, order.order_number, order.total)
                updated = replace(updated, delivery_bonus_awarded=True, delivery_bonus_points=bonus)
            if updated is order:
                return order
            saved = self._orders.save(updated, order.version)

        if order.status != ORDER_DELIVERED:
            self._published_after_advance(saved, order.status)
        return saved

    # ── Sweep support ─────────────────────────────────────────

    def unpaid_orders(self) -> List[Order]:
        return [
            o for o in self._orders.by_status(ORDER_PENDING)
            if o.payment.status in (PAYMENT_PENDING, PAYMENT_FAILED)
        ]
