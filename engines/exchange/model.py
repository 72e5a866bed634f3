"""
Evolv Exchange Engine — Model
=============================
An exchange request has two independent tracks:

    decision    pending → approved | rejected      (admin, terminal)
    logistics   not_started → pickup_scheduled → received
                → replacement_shipped | refund_initiated

The decision is made once. Logistics only move after approval and
record the carrier side of the exchange: reverse pickup of the
original item, then either a replacement shipment or a refund of the
exchanged items' value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from core.primitives.money import ZERO, money_str
from core.primitives.workflow import WorkflowDefinition

EXCHANGE_WINDOW = timedelta(days=7)

# ── Decision ──────────────────────────────────────────────────

EXCHANGE_PENDING = "pending"
EXCHANGE_APPROVED = "approved"
EXCHANGE_REJECTED = "rejected"

EXCHANGE_WORKFLOW = WorkflowDefinition(
    name="Exchange",
    initial_state=EXCHANGE_PENDING,
    terminal_states=frozenset({EXCHANGE_APPROVED, EXCHANGE_REJECTED}),
    transitions={
        EXCHANGE_PENDING: frozenset({EXCHANGE_APPROVED, EXCHANGE_REJECTED}),
        EXCHANGE_APPROVED: frozenset(),
        EXCHANGE_REJECTED: frozenset(),
    },
)

# ── Logistics ─────────────────────────────────────────────────

LOGISTICS_NOT_STARTED = "not_started"
LOGISTICS_PICKUP_FAILED = "pickup_failed"
LOGISTICS_PICKUP_SCHEDULED = "pickup_scheduled"
LOGISTICS_RECEIVED = "received"
LOGISTICS_REPLACEMENT_FAILED = "replacement_failed"
LOGISTICS_REPLACEMENT_SHIPPED = "replacement_shipped"
LOGISTICS_REFUND_INITIATED = "refund_initiated"

LOGISTICS_WORKFLOW = WorkflowDefinition(
    name="ExchangeLogistics",
    initial_state=LOGISTICS_NOT_STARTED,
    terminal_states=frozenset({LOGISTICS_REPLACEMENT_SHIPPED, LOGISTICS_REFUND_INITIATED}),
    transitions={
        LOGISTICS_NOT_STARTED: frozenset({LOGISTICS_PICKUP_SCHEDULED, LOGISTICS_PICKUP_FAILED}),
        LOGISTICS_PICKUP_FAILED: frozenset({LOGISTICS_PICKUP_SCHEDULED}),
        LOGISTICS_PICKUP_SCHEDULED: frozenset({LOGISTICS_RECEIVED}),
        LOGISTICS_RECEIVED: frozenset({
            LOGISTICS_REPLACEMENT_SHIPPED,
            LOGISTICS_REPLACEMENT_FAILED,
            LOGISTICS_REFUND_INITIATED,
        }),
        LOGISTICS_REPLACEMENT_FAILED: frozenset({LOGISTICS_REPLACEMENT_SHIPPED}),
        LOGISTICS_REPLACEMENT_SHIPPED: frozenset(),
        LOGISTICS_REFUND_INITIATED: frozenset(),
    },
)


# ══════════════════════════════════════════════════════════════
# VALUE TYPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExchangeItem:
    product_id: str
    name: str
    size: str
    color: str
    unit_price: Decimal
    quantity: int
    note: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "unit_price": money_str(self.unit_price),
            "quantity": self.quantity,
            "note": self.note,
        }


@dataclass(frozen=True)
class StatusLogEntry:
    status: str
    message: str
    created_at: datetime
    created_by: str

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str = ""
    delivered_at: Optional[datetime] = None
    window_ends_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "reason": self.reason,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "window_ends_at": self.window_ends_at.isoformat() if self.window_ends_at else None,
        }


# ══════════════════════════════════════════════════════════════
# EXCHANGE REQUEST
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExchangeRequest:
    exchange_id: str
    order_number: str
    customer_id: str
    items: Tuple[ExchangeItem, ...]
    reason: str
    requested_at: datetime
    evidence_images: Tuple[str, ...] = field(default_factory=tuple)
    status: str = EXCHANGE_PENDING
    with_replacement: bool = True
    handled_by: Optional[str] = None
    handled_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    logistics: str = LOGISTICS_NOT_STARTED
    reverse_awb: Optional[str] = None
    forward_awb: Optional[str] = None
    refund_amount: Decimal = ZERO
    status_log: Tuple[StatusLogEntry, ...] = field(default_factory=tuple)
    version: int = 0

    @property
    def items_value(self) -> Decimal:
        return sum((i.line_total for i in self.items), ZERO)

    @property
    def is_open(self) -> bool:
        """Anything but a rejection blocks another request for the order."""
        return self.status != EXCHANGE_REJECTED

    def logged(self, status: str, message: str, at: datetime, by: str) -> "ExchangeRequest":
        entry = StatusLogEntry(status=status, message=message, created_at=at, created_by=by)
        return replace(self, status_log=self.status_log + (entry,))

    def decide(self, to_status: str, message: str, at: datetime, by: str) -> "ExchangeRequest":
        if not EXCHANGE_WORKFLOW.is_valid_transition(self.status, to_status):
            raise ValueError(f"Invalid exchange transition {self.status} → {to_status}.")
        return replace(self, status=to_status, handled_by=by, handled_at=at).logged(to_status, message, at, by)

    def advance(self, to_logistics: str, message: str, at: datetime, by: str = "system") -> "ExchangeRequest":
        if not LOGISTICS_WORKFLOW.is_valid_transition(self.logistics, to_logistics):
            raise ValueError(f"Invalid exchange logistics transition {self.logistics} → {to_logistics}.")
        return replace(self, logistics=to_logistics).logged(to_logistics, message, at, by)

    def to_dict(self) -> dict:
        return {
            "exchange_id": self.exchange_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "items": [i.to_dict() for i in self.items],
            "reason": self.reason,
            "evidence_images": list(self.evidence_images),
            "status": self.status,
            "with_replacement": self.with_replacement,
            "handled_by": self.handled_by,
            "handled_at": self.handled_at.isoformat() if self.handled_at else None,
            "rejection_reason": self.rejection_reason,
            "logistics": self.logistics,
            "reverse_awb": self.reverse_awb,
            "forward_awb": self.forward_awb,
            "refund_amount": money_str(self.refund_amount),
            "requested_at": self.requested_at.isoformat(),
            "status_log": [e.to_dict() for e in self.status_log],
            "version": self.version,
        }

    def state_summary(self) -> dict:
        return {
            "exchange_id": self.exchange_id,
            "order_number": self.order_number,
            "status": self.status,
            "logistics": self.logistics,
            "version": self.version,
        }
