"""
Evolv Exchange Engine — Commands
================================
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from core.commands.base import ACTOR_ADMIN, ACTOR_CUSTOMER, Command

SOURCE_ENGINE = "exchange"


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
class RequestedItem:
    """Selects an order line by product, size and colour. quantity None = whole line."""
    product_id: str
    size: str = ""
    color: str = ""
    quantity: Optional[int] = None
    note: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "RequestedItem":
        quantity = data.get("quantity")
        return cls(
            product_id=str(data.get("product_id") or data.get("product") or ""),
            size=str(data.get("size") or ""),
            color=str(data.get("color") or ""),
            quantity=int(quantity) if quantity is not None else None,
            note=str(data.get("note") or ""),
        )


@dataclass(frozen=True)
class SubmitExchangeRequest:
    """Empty items means every item on the order."""
    order_number: str
    customer_id: str
    reason: str
    issued_at: datetime
    items: Tuple[RequestedItem, ...] = field(default_factory=tuple)
    evidence_images: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            raise ValueError("reason is required.")
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "evidence_images", tuple(self.evidence_images))

    def to_command(self) -> Command:
        return _command(
            "exchange.request.submit.request", ACTOR_CUSTOMER, self.customer_id, self.issued_at,
            {
                "order_number": self.order_number,
                "item_count": len(self.items),
                "reason": self.reason,
            },
        )


@dataclass(frozen=True)
class ApproveExchangeRequest:
    exchange_id: str
    admin_id: str
    issued_at: datetime
    with_replacement: bool = True

    def to_command(self) -> Command:
        return _command(
            "exchange.request.approve.request", ACTOR_ADMIN, self.admin_id, self.issued_at,
            {"exchange_id": self.exchange_id, "with_replacement": self.with_replacement},
        )


@dataclass(frozen=True)
class RejectExchangeRequest:
    exchange_id: str
    admin_id: str
    reason: str
    issued_at: datetime

    def to_command(self) -> Command:
        return _command(
            "exchange.request.reject.request", ACTOR_ADMIN, self.admin_id, self.issued_at,
            {"exchange_id": self.exchange_id, "reason": self.reason},
        )


@dataclass(frozen=True)
class MarkReverseReceivedRequest:
    exchange_id: str
    admin_id: str
    issued_at: datetime

    def to_command(self) -> Command:
        return _command(
            "exchange.item.receive.request", ACTOR_ADMIN, self.admin_id, self.issued_at,
            {"exchange_id": self.exchange_id},
        )


__all__ = [
    "ApproveExchangeRequest",
    "MarkReverseReceivedRequest",
    "RejectExchangeRequest",
    "RequestedItem",
    "SubmitExchangeRequest",
]
