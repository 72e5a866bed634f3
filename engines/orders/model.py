"""
Evolv Orders Engine — Canonical Order Schema
============================================
One Order shape with required fields. Legacy documents are mapped into
it once, by engines.orders.legacy; nothing downstream falls back
across alternative field names.

Three lifecycles are tracked on an order:

    status          pending → confirmed → processing → shipped
                    → out_for_delivery → delivered
                    (processing and out_for_delivery may be skipped)
                    pending → cancelled
    payment.status  pending → paid | failed,  failed → paid (retry),
                    paid → refunded
    refund.status   initiated → processing → completed | failed,
                    failed → initiated (retry)

The timeline is append-only. Orders are never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import FrozenSet, Optional, Tuple

from core.primitives.money import ZERO, money_str
from core.primitives.workflow import WorkflowDefinition
from engines.pricing import PriceBreakdown

# ── Business constants ────────────────────────────────────────

PAYMENT_WINDOW = timedelta(hours=12)
CARRIER_SYNC_STALE_AFTER = timedelta(minutes=30)
ORDER_NUMBER_PREFIX = "NSD"

# ── Order status ──────────────────────────────────────────────

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_OUT_FOR_DELIVERY = "out_for_delivery"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

ORDER_WORKFLOW = WorkflowDefinition(
    name="Order",
    initial_state=ORDER_PENDING,
    terminal_states=frozenset({ORDER_DELIVERED, ORDER_CANCELLED}),
    transitions={
        ORDER_PENDING: frozenset({ORDER_CONFIRMED, ORDER_CANCELLED}),
        # Processing and out-for-delivery are optional carrier scans;
        # shipped (hand-over to the carrier) never is.
        ORDER_CONFIRMED: frozenset({ORDER_PROCESSING, ORDER_SHIPPED}),
        ORDER_PROCESSING: frozenset({ORDER_SHIPPED}),
        ORDER_SHIPPED: frozenset({ORDER_OUT_FOR_DELIVERY, ORDER_DELIVERED}),
        ORDER_OUT_FOR_DELIVERY: frozenset({ORDER_DELIVERED}),
        ORDER_DELIVERED: frozenset(),
        ORDER_CANCELLED: frozenset(),
    },
    progression=(
        ORDER_PENDING,
        ORDER_CONFIRMED,
        ORDER_PROCESSING,
        ORDER_SHIPPED,
        ORDER_OUT_FOR_DELIVERY,
        ORDER_DELIVERED,
    ),
)

# Targets a carrier webhook or an admin may push.
FULFILLMENT_STATUSES = frozenset({
    ORDER_PROCESSING, ORDER_SHIPPED, ORDER_OUT_FOR_DELIVERY, ORDER_DELIVERED,
})

# ── Payment status ────────────────────────────────────────────

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

PAYMENT_WORKFLOW = WorkflowDefinition(
    name="Payment",
    initial_state=PAYMENT_PENDING,
    terminal_states=frozenset({PAYMENT_REFUNDED}),
    transitions={
        PAYMENT_PENDING: frozenset({PAYMENT_PAID, PAYMENT_FAILED}),
        PAYMENT_FAILED: frozenset({PAYMENT_PAID}),
        PAYMENT_PAID: frozenset({PAYMENT_REFUNDED}),
        PAYMENT_REFUNDED: frozenset(),
    },
)

PAYMENT_METHOD_GATEWAY = "razorpay"

# ── Refund status ─────────────────────────────────────────────

REFUND_INITIATED = "initiated"
REFUND_PROCESSING = "processing"
REFUND_COMPLETED = "completed"
REFUND_FAILED = "failed"

REFUND_WORKFLOW = WorkflowDefinition(
    name="Refund",
    initial_state=REFUND_INITIATED,
    terminal_states=frozenset({REFUND_COMPLETED}),
    transitions={
        REFUND_INITIATED: frozenset({REFUND_PROCESSING, REFUND_FAILED}),
        REFUND_PROCESSING: frozenset({REFUND_COMPLETED, REFUND_FAILED}),
        REFUND_FAILED: frozenset({REFUND_INITIATED}),
        REFUND_COMPLETED: frozenset(),
    },
)

# ── Fulfillment (shipment creation) status ────────────────────

FULFILLMENT_NOT_SCHEDULED = "not_scheduled"
FULFILLMENT_SCHEDULING = "scheduling"
FULFILLMENT_CREATED = "created"
FULFILLMENT_RETRY_PENDING = "retry_pending"
FULFILLMENT_MANUAL = "manual_intervention"

# A booking claim older than this is presumed lost and may be taken over.
SCHEDULING_CLAIM_TIMEOUT = timedelta(minutes=10)


# ══════════════════════════════════════════════════════════════
# VALUE TYPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Address:
    first_name: str
    last_name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "India"

    def __post_init__(self):
        for name in ("first_name", "phone", "street", "city", "state", "zip_code"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValueError(f"address.{name} is required.")
            object.__setattr__(self, name, str(value).strip())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Address":
        return cls(
            first_name=data.get("first_name") or data.get("firstName", ""),
            last_name=data.get("last_name") or data.get("lastName", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip_code=data.get("zip_code") or data.get("zipCode", ""),
            country=data.get("country") or "India",
        )


@dataclass(frozen=True)
class OrderItem:
    """Frozen copy of a cart line at checkout."""

    product_id: str
    name: str
    size: str
    color: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def line_key(self) -> Tuple[str, str, str]:
        return (self.product_id, self.size, self.color)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "unit_price": money_str(self.unit_price),
            "quantity": self.quantity,
            "line_total": money_str(self.line_total),
        }


@dataclass(frozen=True)
class OrderDiscount:
    promo_code: Optional[str] = None
    points_redeemed: int = 0
    amount: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "promo_code": self.promo_code,
            "points_redeemed": self.points_redeemed,
            "amount": money_str(self.amount),
        }


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    message: str
    timestamp: datetime
    updated_by: str = "system"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "updated_by": self.updated_by,
        }


@dataclass(frozen=True)
class RefundRecord:
    status: str
    amount: Decimal
    reason: str
    initiated_at: datetime
    last_attempt_at: datetime
    attempts: int = 1
    refund_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def advance(self, to_status: str, **changes) -> "RefundRecord":
        if not REFUND_WORKFLOW.is_valid_transition(self.status, to_status):
            raise ValueError(f"Invalid refund transition {self.status} → {to_status}.")
        return replace(self, status=to_status, **changes)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "amount": money_str(self.amount),
            "reason": self.reason,
            "refund_id": self.refund_id,
            "attempts": self.attempts,
            "initiated_at": self.initiated_at.isoformat(),
            "last_attempt_at": self.last_attempt_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class PaymentRecord:
    status: str = PAYMENT_PENDING
    method: str = PAYMENT_METHOD_GATEWAY
    gateway_order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    instrument: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund: Optional[RefundRecord] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "method": self.method,
            "gateway_order_id": self.gateway_order_id,
            "transaction_id": self.transaction_id,
            "instrument": self.instrument,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "failure_reason": self.failure_reason,
            "refund": self.refund.to_dict() if self.refund else None,
        }


@dataclass(frozen=True)
class FulfillmentRecord:
    status: str = FULFILLMENT_NOT_SCHEDULED
    shipment_id: Optional[str] = None
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    attempts: int = 0
    last_error: Optional[str] = None
    carrier_status: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    claim_token: Optional[str] = None
    claimed_at: Optional[datetime] = None
    needs_attention: bool = False
    attention_reason: Optional[str] = None

    def claim_is_live(self, now: datetime) -> bool:
        """True while another scheduler holds an unexpired booking claim."""
        return (
            self.status == FULFILLMENT_SCHEDULING
            and self.claimed_at is not None
            and now - self.claimed_at < SCHEDULING_CLAIM_TIMEOUT
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "shipment_id": self.shipment_id,
            "awb": self.awb,
            "tracking_url": self.tracking_url,
            "attempts": self.attempts,
            "carrier_status": self.carrier_status,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "needs_attention": self.needs_attention,
            "attention_reason": self.attention_reason,
        }


# ══════════════════════════════════════════════════════════════
# ORDER
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Order:
    order_number: str
    customer_id: str
    items: Tuple[OrderItem, ...]
    shipping_address: Address
    billing_address: Address
    pricing: PriceBreakdown
    discount: OrderDiscount
    created_at: datetime
    status: str = ORDER_PENDING
    payment: PaymentRecord = field(default_factory=PaymentRecord)
    fulfillment: FulfillmentRecord = field(default_factory=FulfillmentRecord)
    timeline: Tuple[TimelineEntry, ...] = field(default_factory=tuple)
    tier_at_order: str = "bronze"
    points_earned: int = 0
    delivery_bonus_points: int = 0
    delivery_bonus_awarded: bool = False
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    reconciliation_required: bool = False
    late_payment_id: Optional[str] = None
    processed_webhooks: FrozenSet[str] = field(default_factory=frozenset)
    version: int = 0

    @property
    def total(self) -> Decimal:
        return self.pricing.total

    @property
    def payment_deadline(self) -> datetime:
        return self.created_at + PAYMENT_WINDOW

    @property
    def is_terminal(self) -> bool:
        return ORDER_WORKFLOW.is_terminal(self.status)

    @property
    def last_message(self) -> str:
        return self.timeline[-1].message if self.timeline else ""

    def with_entry(self, message: str, at: datetime, updated_by: str = "system") -> "Order":
        """Append a timeline entry without changing status."""
        entry = TimelineEntry(status=self.status, message=message, timestamp=at, updated_by=updated_by)
        return replace(self, timeline=self.timeline + (entry,))

    def transition(self, to_status: str, message: str, at: datetime, updated_by: str = "system") -> "Order":
        """
        Move to `to_status` and append the matching timeline entry.
        Callers check the workflow first; this only refuses a bad edge.
        """
        if not ORDER_WORKFLOW.is_valid_transition(self.status, to_status):
            raise ValueError(f"Invalid order transition {self.status} → {to_status}.")
        entry = TimelineEntry(status=to_status, message=message, timestamp=at, updated_by=updated_by)
        return replace(self, status=to_status, timeline=self.timeline + (entry,))

    def to_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "last_message": self.last_message,
            "items": [i.to_dict() for i in self.items],
            "shipping_address": self.shipping_address.to_dict(),
            "billing_address": self.billing_address.to_dict(),
            "pricing": self.pricing.to_dict(),
            "discount": self.discount.to_dict(),
            "payment": self.payment.to_dict(),
            "fulfillment": self.fulfillment.to_dict(),
            "timeline": [t.to_dict() for t in self.timeline],
            "points_earned": self.points_earned,
            "delivery_bonus_awarded": self.delivery_bonus_awarded,
            "created_at": self.created_at.isoformat(),
            "payment_deadline": self.payment_deadline.isoformat(),
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "version": self.version,
        }

    def state_summary(self) -> dict:
        """Authoritative state attached to conflict errors."""
        return {
            "order_number": self.order_number,
            "status": self.status,
            "payment_status": self.payment.status,
            "last_message": self.last_message,
            "version": self.version,
        }
