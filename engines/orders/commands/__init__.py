"""
Evolv Orders Engine — Commands
==============================
Typed requests for every order transition. Each converts into the
canonical Command so policies see one shape regardless of whether the
trigger is a customer, an admin, the gateway, the carrier or the sweep.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from core.commands.base import (
    ACTOR_ADMIN,
    ACTOR_CARRIER,
    ACTOR_CUSTOMER,
    ACTOR_GATEWAY,
    ACTOR_SYSTEM,
    Command,
)
from engines.orders.model import FULFILLMENT_STATUSES, Address
from engines.pricing import CartLineItem

SOURCE_ENGINE = "orders"


def _command(command_type, actor_type, actor_id, issued_at, payload) -> Command:
    return Command(
        command_id=uuid.uuid4(),
        command_type=command_type,
        actor_type=actor_type,
        actor_id=actor_id,
        payload=payload,
        issued_at=issued_at,
        correlation_id=uuid.uuid4(),
        source_engine=SOURCE_ENGINE,
    )


@dataclass(frozen=True)
class PlaceOrderRequest:
    """Checkout submission. client_total is compared, never trusted."""
    customer_id: str
    items: Tuple[CartLineItem, ...]
    shipping_address: Address
    issued_at: datetime
    billing_address: Optional[Address] = None
    promo_code: Optional[str] = None
    points_to_redeem: int = 0
    client_total: Optional[str] = None

    def __post_init__(self):
        if not self.customer_id:
            raise ValueError("customer_id must be non-empty.")
        if self.points_to_redeem < 0:
            raise ValueError("points_to_redeem must be >= 0.")
        object.__setattr__(self, "items", tuple(self.items))

    def to_command(self) -> Command:
        return _command(
            "orders.order.place.request", ACTOR_CUSTOMER, self.customer_id, self.issued_at,
            {
                "item_count": len(self.items),
                "shipping_state": self.shipping_address.state,
                "promo_code": self.promo_code,
                "points_to_redeem": self.points_to_redeem,
                "client_total": self.client_total,
            },
        )


@dataclass(frozen=True)
class ConfirmPaymentRequest:
    """Signed success callback relayed from the payment gateway."""
    order_number: str
    gateway_order_id: str
    payment_id: str
    signature: str
    issued_at: datetime

    def __post_init__(self):
        for name in ("order_number", "gateway_order_id", "payment_id", "signature"):
            if not getattr(self, name):
                raise ValueError(f"{name} must be non-empty.")

    def to_command(self) -> Command:
        return _command(
            "orders.payment.confirm.request", ACTOR_GATEWAY, self.payment_id, self.issued_at,
            {
                "order_number": self.order_number,
                "gateway_order_id": self.gateway_order_id,
                "payment_id": self.payment_id,
            },
        )


@dataclass(frozen=True)
class RecordPaymentFailureRequest:
    order_number: str
    issued_at: datetime
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    reason: str = "Payment failed"

    def to_command(self) -> Command:
        return _command(
            "orders.payment.fail.request", ACTOR_GATEWAY, self.payment_id or "gateway",
            self.issued_at,
            {
                "order_number": self.order_number,
                "gateway_order_id": self.gateway_order_id,
                "payment_id": self.payment_id,
                "reason": self.reason,
            },
        )


@dataclass(frozen=True)
class CancelOrderRequest:
    order_number: str
    customer_id: str
    issued_at: datetime
    reason: str = ""

    def to_command(self) -> Command:
        return _command(
            "orders.order.cancel.request", ACTOR_CUSTOMER, self.customer_id, self.issued_at,
            {"order_number": self.order_number, "reason": self.reason},
        )


@dataclass(frozen=True)
class ExpireOrderRequest:
    """Issued by the payment-window sweep."""
    order_number: str
    issued_at: datetime

    def to_command(self) -> Command:
        return _command(
            "orders.order.expire.request", ACTOR_SYSTEM, "payment-window-sweep", self.issued_at,
            {"order_number": self.order_number},
        )


@dataclass(frozen=True)
class ConfirmDeliveryRequest:
    order_number: str
    customer_id: str
    issued_at: datetime

    def to_command(self) -> Command:
        return _command(
            "orders.delivery.confirm.request", ACTOR_CUSTOMER, self.customer_id, self.issued_at,
            {"order_number": self.order_number},
        )


UPDATE_SOURCE_CARRIER = "carrier"
UPDATE_SOURCE_ADMIN = "admin"


@dataclass(frozen=True)
class UpdateOrderStatusRequest:
    """Forward-only fulfillment update from the carrier or an admin."""
    order_number: str
    status: str
    issued_at: datetime
    source: str = UPDATE_SOURCE_CARRIER
    actor_id: str = "carrier"
    message: str = ""
    carrier_status: Optional[str] = None

    def __post_init__(self):
        if self.status not in FULFILLMENT_STATUSES:
            raise ValueError(
                f"status '{self.status}' is not a fulfillment status. "
                f"Must be one of: {sorted(FULFILLMENT_STATUSES)}"
            )
        if self.source not in (UPDATE_SOURCE_CARRIER, UPDATE_SOURCE_ADMIN):
            raise ValueError(f"Invalid update source: {self.source}")

    def to_command(self) -> Command:
        actor_type = ACTOR_CARRIER if self.source == UPDATE_SOURCE_CARRIER else ACTOR_ADMIN
        return _command(
            "orders.status.update.request", actor_type, self.actor_id, self.issued_at,
            {
                "order_number": self.order_number,
                "status": self.status,
                "message": self.message,
                "carrier_status": self.carrier_status,
            },
        )


__all__ = [
    "CancelOrderRequest",
    "ConfirmDeliveryRequest",
    "ConfirmPaymentRequest",
    "ExpireOrderRequest",
    "PlaceOrderRequest",
    "RecordPaymentFailureRequest",
    "UPDATE_SOURCE_ADMIN",
    "UPDATE_SOURCE_CARRIER",
    "UpdateOrderStatusRequest",
]
