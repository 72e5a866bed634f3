"""
Evolv Exchange Engine — Policies
================================
Submission policies look at the Order; decision policies look at the
ExchangeRequest. The one-open-request rule needs the repository and
lives in the service.
"""

from __future__ import annotations

from typing import Optional

from core.commands.base import Command
from core.commands.rejection import ReasonCode, RejectionReason
from core.time import has_elapsed
from engines.exchange.model import (
    EXCHANGE_APPROVED,
    EXCHANGE_PENDING,
    EXCHANGE_WINDOW,
    LOGISTICS_PICKUP_SCHEDULED,
    ExchangeRequest,
)
from engines.orders.model import ORDER_DELIVERED, Order


def order_owned_by_customer_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.customer_id != command.actor_id:
        return RejectionReason(
            code=ReasonCode.ORDER_NOT_FOUND,
            message="Order not found.",
            policy_name="order_owned_by_customer_policy",
        )
    return None


def order_delivered_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.status != ORDER_DELIVERED:
        return RejectionReason(
            code=ReasonCode.EXCHANGE_NOT_ELIGIBLE,
            message="Only delivered orders can be exchanged.",
            policy_name="order_delivered_policy",
        )
    if order.delivered_at is None:
        return RejectionReason(
            code=ReasonCode.EXCHANGE_NOT_ELIGIBLE,
            message="Delivery date not available.",
            policy_name="order_delivered_policy",
        )
    return None


def exchange_window_open_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if has_elapsed(order.delivered_at, EXCHANGE_WINDOW, command.issued_at):
        return RejectionReason(
            code=ReasonCode.EXCHANGE_WINDOW_EXPIRED,
            message=f"Exchange window ({EXCHANGE_WINDOW.days} days) has passed.",
            policy_name="exchange_window_open_policy",
        )
    return None


def exchange_pending_policy(command: Command, exchange: ExchangeRequest) -> Optional[RejectionReason]:
    if exchange.status != EXCHANGE_PENDING:
        return RejectionReason(
            code=ReasonCode.EXCHANGE_NOT_PENDING,
            message=f"Exchange request is already {exchange.status}.",
            policy_name="exchange_pending_policy",
        )
    return None


def rejection_reason_required_policy(command: Command, exchange: ExchangeRequest) -> Optional[RejectionReason]:
    if not str(command.payload.get("reason") or "").strip():
        return RejectionReason(
            code=ReasonCode.REJECTION_REASON_REQUIRED,
            message="A reason is required to reject an exchange request.",
            policy_name="rejection_reason_required_policy",
        )
    return None


def reverse_pickup_scheduled_policy(command: Command, exchange: ExchangeRequest) -> Optional[RejectionReason]:
    if exchange.status != EXCHANGE_APPROVED or exchange.logistics != LOGISTICS_PICKUP_SCHEDULED:
        return RejectionReason(
            code=ReasonCode.INVALID_TRANSITION,
            message="The returned item can only be received after a pickup is scheduled.",
            policy_name="reverse_pickup_scheduled_policy",
        )
    return None


SUBMIT_POLICIES = (
    order_owned_by_customer_policy,
    order_delivered_policy,
    exchange_window_open_policy,
)

APPROVE_POLICIES = (exchange_pending_policy,)

REJECT_POLICIES = (
    rejection_reason_required_policy,
    exchange_pending_policy,
)

RECEIVE_POLICIES = (reverse_pickup_scheduled_policy,)

__all__ = [
    "APPROVE_POLICIES",
    "RECEIVE_POLICIES",
    "REJECT_POLICIES",
    "SUBMIT_POLICIES",
    "exchange_pending_policy",
    "exchange_window_open_policy",
    "order_delivered_policy",
    "order_owned_by_customer_policy",
    "rejection_reason_required_policy",
    "reverse_pickup_scheduled_policy",
]
