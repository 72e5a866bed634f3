"""
Evolv Orders Engine — Policies
==============================
Pure transition guards: (command, order) → Optional[RejectionReason].
The command's issued_at is the clock reading for time-based checks.
"""

from __future__ import annotations

from typing import Optional

from core.commands.base import Command
from core.commands.rejection import ReasonCode, RejectionReason
from core.time import has_elapsed
from engines.orders.model import (
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_PENDING,
    ORDER_SHIPPED,
    ORDER_WORKFLOW,
    PAYMENT_PAID,
    PAYMENT_WINDOW,
    Order,
)


def order_must_be_pending_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.status != ORDER_PENDING:
        return RejectionReason(
            code=ReasonCode.ORDER_NOT_PENDING,
            message=f"Order {order.order_number} is {order.status}, not pending.",
            policy_name="order_must_be_pending_policy",
        )
    return None


def payment_must_not_be_paid_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.payment.status == PAYMENT_PAID:
        return RejectionReason(
            code=ReasonCode.ORDER_ALREADY_PAID,
            message=f"Order {order.order_number} has already been paid.",
            policy_name="payment_must_not_be_paid_policy",
        )
    return None


def order_must_not_be_cancelled_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.status == ORDER_CANCELLED:
        return RejectionReason(
            code=ReasonCode.ORDER_CANCELLED,
            message=f"Order {order.order_number} has been cancelled.",
            policy_name="order_must_not_be_cancelled_policy",
        )
    return None


def payment_window_open_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if has_elapsed(order.created_at, PAYMENT_WINDOW, command.issued_at):
        return RejectionReason(
            code=ReasonCode.PAYMENT_WINDOW_EXPIRED,
            message=f"The payment window for order {order.order_number} has closed.",
            policy_name="payment_window_open_policy",
        )
    return None


def payment_window_elapsed_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    """The sweep may only cancel once the window has fully elapsed."""
    if not has_elapsed(order.created_at, PAYMENT_WINDOW, command.issued_at):
        return RejectionReason(
            code=ReasonCode.INVALID_TRANSITION,
            message=f"Order {order.order_number} is still within its payment window.",
            policy_name="payment_window_elapsed_policy",
        )
    return None


def gateway_order_must_match_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    expected = order.payment.gateway_order_id
    submitted = command.payload.get("gateway_order_id")
    if expected is None or submitted != expected:
        return RejectionReason(
            code=ReasonCode.PAYMENT_SIGNATURE_INVALID,
            message="Payment does not belong to this order.",
            policy_name="gateway_order_must_match_policy",
        )
    return None


def forward_transition_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    """Fulfillment updates move forward along the workflow only."""
    target = command.payload["status"]
    if not ORDER_WORKFLOW.is_valid_transition(order.status, target):
        return RejectionReason(
            code=ReasonCode.OUT_OF_ORDER_EVENT,
            message=f"Order {order.order_number} cannot move from {order.status} to {target}.",
            policy_name="forward_transition_policy",
        )
    return None


def delivery_confirmable_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if order.status not in (ORDER_SHIPPED, ORDER_OUT_FOR_DELIVERY, ORDER_DELIVERED):
        return RejectionReason(
            code=ReasonCode.INVALID_TRANSITION,
            message=f"Order {order.order_number} has not shipped yet.",
            policy_name="delivery_confirmable_policy",
        )
    return None


def customer_must_own_order_policy(command: Command, order: Order) -> Optional[RejectionReason]:
    if command.actor_id != order.customer_id:
        return RejectionReason(
            code=ReasonCode.ORDER_NOT_FOUND,
            message=f"Order {command.payload.get('order_number')} not found.",
            policy_name="customer_must_own_order_policy",
        )
    return None


# ── Policy sets per command ───────────────────────────────────

CANCEL_POLICIES = (
    customer_must_own_order_policy,
    order_must_be_pending_policy,
    payment_must_not_be_paid_policy,
)

EXPIRE_POLICIES = (
    order_must_be_pending_policy,
    payment_must_not_be_paid_policy,
    payment_window_elapsed_policy,
)

CONFIRM_PAYMENT_POLICIES = (
    gateway_order_must_match_policy,
    order_must_not_be_cancelled_policy,
    payment_window_open_policy,
    order_must_be_pending_policy,
)

STATUS_UPDATE_POLICIES = (
    order_must_not_be_cancelled_policy,
    forward_transition_policy,
)

CONFIRM_DELIVERY_POLICIES = (
    customer_must_own_order_policy,
    delivery_confirmable_policy,
)

__all__ = [
    "CANCEL_POLICIES",
    "CONFIRM_DELIVERY_POLICIES",
    "CONFIRM_PAYMENT_POLICIES",
    "EXPIRE_POLICIES",
    "STATUS_UPDATE_POLICIES",
    "customer_must_own_order_policy",
    "delivery_confirmable_policy",
    "forward_transition_policy",
    "gateway_order_must_match_policy",
    "order_must_be_pending_policy",
    "order_must_not_be_cancelled_policy",
    "payment_must_not_be_paid_policy",
    "payment_window_elapsed_policy",
    "payment_window_open_policy",
]
