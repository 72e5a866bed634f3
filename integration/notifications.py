"""
Evolv Integration — Customer Notifications
==========================================
Fire-and-forget mail on order placement, cancellation, refund and
exchange decisions, sent through Django's mail framework.

The notifier is wired as an event-bus subscriber. The bus catches and
logs a failing subscriber, so a mail outage never blocks or undoes the
transition that produced the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from django.core.mail import send_mail

from core.events import DomainEvent, EventBus
from engines.exchange.events import (
    EXCHANGE_APPROVED_V1,
    EXCHANGE_REJECTED_V1,
    EXCHANGE_REQUESTED_V1,
)
from engines.orders.events import (
    ORDER_CANCELLED_V1,
    ORDER_CONFIRMED_V1,
    ORDER_PLACED_V1,
    REFUND_COMPLETED_V1,
)

logger = logging.getLogger("evolv.integration")

SUBSCRIBER_NAME = "customer_notifications"


@dataclass(frozen=True)
class Message:
    subject: str
    body: str


def _order_placed(p: dict) -> Message:
    return Message(
        subject=f"Order {p['order_number']} placed",
        body=(
            f"Hi {p.get('customer_name', '')},\n\n"
            f"We have received your order {p['order_number']} for ₹{p['total']}. "
            "Please complete payment within 12 hours to confirm it."
        ),
    )


def _order_confirmed(p: dict) -> Message:
    return Message(
        subject=f"Order {p['order_number']} confirmed",
        body=f"Payment received. Your order {p['order_number']} is confirmed.",
    )


def _order_cancelled(p: dict) -> Message:
    return Message(
        subject=f"Order {p['order_number']} cancelled",
        body=f"Your order {p['order_number']} has been cancelled. {p.get('message', '')}".strip(),
    )


def _refund_completed(p: dict) -> Message:
    return Message(
        subject=f"Refund for order {p['order_number']}",
        body=f"A refund of ₹{p['refund_amount']} for order {p['order_number']} has been completed.",
    )


def _exchange_requested(p: dict) -> Message:
    return Message(
        subject=f"Exchange request received for order {p['order_number']}",
        body="We have received your exchange request and will review it shortly.",
    )


def _exchange_approved(p: dict) -> Message:
    return Message(
        subject=f"Exchange approved for order {p['order_number']}",
        body="Your exchange has been approved. Our courier partner will collect the item.",
    )


def _exchange_rejected(p: dict) -> Message:
    return Message(
        subject=f"Exchange request for order {p['order_number']}",
        body=f"Your exchange request could not be approved. Reason: {p.get('rejection_reason', '')}",
    )


TEMPLATES: Dict[str, Callable[[dict], Message]] = {
    ORDER_PLACED_V1: _order_placed,
    ORDER_CONFIRMED_V1: _order_confirmed,
    ORDER_CANCELLED_V1: _order_cancelled,
    REFUND_COMPLETED_V1: _refund_completed,
    EXCHANGE_REQUESTED_V1: _exchange_requested,
    EXCHANGE_APPROVED_V1: _exchange_approved,
    EXCHANGE_REJECTED_V1: _exchange_rejected,
}


class DjangoMailNotifier:
    """Renders a template per event type and sends it with send_mail()."""

    def __init__(self, sender: str, *, mailer: Optional[Callable[..., int]] = None):
        self._sender = sender
        self._mailer = mailer or send_mail

    def __call__(self, event: DomainEvent) -> None:
        template = TEMPLATES.get(event.event_type)
        if template is None:
            return
        recipient = event.payload.get("customer_email")
        if not recipient:
            logger.warning("No recipient for %s (%s)", event.event_type, event.subject_id)
            return
        message = template(event.payload)
        self._mailer(
            message.subject,
            message.body,
            self._sender,
            [recipient],
            fail_silently=False,
        )
        logger.info("Sent %s notification to %s", event.event_type, recipient)


def register_notifications(bus: EventBus, notifier: DjangoMailNotifier) -> None:
    for event_type in TEMPLATES:
        bus.subscribe(event_type, notifier, SUBSCRIBER_NAME)
