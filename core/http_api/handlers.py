"""
Evolv HTTP API - Framework-Agnostic Handlers
============================================
Pure handler functions over request bodies, headers and injected
dependencies. Every handler returns an HttpApiResult; every command
handler returns the post-transition state.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from core.commands.base import ACTOR_ADMIN
from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import EngineError, ValidationError
from core.http_api.auth import (
    AuthPrincipal,
    normalize_headers,
    resolve_admin_principal,
    resolve_auth_principal,
)
from core.http_api.contracts import HttpApiResult
from core.http_api.errors import (
    engine_error_response,
    error_response,
    rejection_response,
    status_for_reason,
    success_response,
)
from engines.exchange import (
    ApproveExchangeRequest,
    MarkReverseReceivedRequest,
    RejectExchangeRequest,
    RequestedItem,
    SubmitExchangeRequest,
)
from engines.orders import (
    UPDATE_SOURCE_ADMIN,
    Address,
    CancelOrderRequest,
    ConfirmDeliveryRequest,
    ConfirmPaymentRequest,
    PlaceOrderRequest,
    RecordPaymentFailureRequest,
    UpdateOrderStatusRequest,
)
from engines.pricing import CartLineItem

logger = logging.getLogger("evolv.http")

HEADER_WEBHOOK_SECRET = "x-webhook-secret"

_BAD_INPUT = (ValueError, KeyError, TypeError, InvalidOperation)


# ══════════════════════════════════════════════════════════════
# SHARED
# ══════════════════════════════════════════════════════════════

def _ok(data: Any, status: int = 200) -> HttpApiResult:
    return HttpApiResult(status=status, body=success_response(data))


def _rejected(reason: RejectionReason) -> HttpApiResult:
    return HttpApiResult(status=status_for_reason(reason), body=rejection_response(reason))


def _principal(headers, dependencies, *, admin: bool = False) -> AuthPrincipal | HttpApiResult:
    resolver = resolve_admin_principal if admin else resolve_auth_principal
    resolved = resolver(headers, dependencies.auth_provider)
    if isinstance(resolved, RejectionReason):
        return _rejected(resolved)
    return resolved


def _customer_scope(principal: AuthPrincipal) -> str | None:
    """Admins see every record; customers only their own."""
    return None if principal.actor_type == ACTOR_ADMIN else principal.actor_id


def _first(body: dict, *names: str, default=None):
    for name in names:
        value = body.get(name)
        if value not in (None, ""):
            return value
    return default


def _line_items(body: dict) -> tuple[CartLineItem, ...]:
    raw = body.get("items") or ()
    if not isinstance(raw, (list, tuple)):
        raise ValueError("items must be a list.")
    return tuple(CartLineItem.from_dict(item) for item in raw)


def _points(body: dict, name: str, *, required: bool = False) -> int:
    """Whole loyalty points. Fractions are rejected, never truncated."""
    raw = body[name] if required else (body.get(name) or 0)
    try:
        value = None if isinstance(raw, bool) else Decimal(str(raw).strip())
    except InvalidOperation:
        value = None
    if value is None or not value.is_finite() or value != value.to_integral_value():
        raise ValidationError.build(
            ReasonCode.INVALID_POINTS,
            f"{name} must be a whole number of points.",
            "whole_points_policy",
        )
    return int(value)


def _run(call: Callable[[], Any], *, status: int = 200) -> HttpApiResult:
    try:
        data = call()
    except EngineError as exc:
        code, body = engine_error_response(exc)
        return HttpApiResult(status=code, body=body)
    except _BAD_INPUT as exc:
        return HttpApiResult(
            status=400,
            body=error_response(code=ReasonCode.INVALID_REQUEST, message=str(exc)),
        )
    except Exception as exc:
        logger.exception("Handler failed")
        return HttpApiResult(
            status=500,
            body=error_response(
                code="HANDLER_EXECUTION_FAILED",
                message="Failed to execute request.",
                details={"error_type": type(exc).__name__},
            ),
        )
    return _ok(data, status)


# ══════════════════════════════════════════════════════════════
# PRICING & DISCOUNTS
# ══════════════════════════════════════════════════════════════

def post_pricing_preview(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        quote = dependencies.lifecycle.quote_cart(
            _line_items(body),
            str(body.get("shipping_state") or ""),
            promo_code=body.get("promo_code") or None,
            points=_points(body, "points"),
            customer_id=principal.actor_id,
        )
        return quote.to_dict()

    return _run(_call)


def post_apply_promo(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        selection = dependencies.discount_resolver.apply_promo_code(
            str(body["code"]), str(body["subtotal"]),
        )
        return selection.to_dict()

    return _run(_call)


def post_apply_points(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        selection = dependencies.discount_resolver.apply_points(
            _points(body, "points", required=True),
            dependencies.loyalty.available_points(principal.actor_id),
            str(body["subtotal"]),
        )
        return selection.to_dict()

    return _run(_call)


# ══════════════════════════════════════════════════════════════
# ORDERS
# ══════════════════════════════════════════════════════════════

def post_place_order(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        billing = body.get("billing_address")
        request = PlaceOrderRequest(
            customer_id=principal.actor_id,
            items=_line_items(body),
            shipping_address=Address.from_dict(body["shipping_address"]),
            billing_address=Address.from_dict(billing) if billing else None,
            promo_code=body.get("promo_code") or None,
            points_to_redeem=_points(body, "points_to_redeem"),
            client_total=None if body.get("client_total") is None else str(body["client_total"]),
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.place_order(request).to_dict()

    return _run(_call, status=201)


def get_order(order_number: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal
    return _run(lambda: dependencies.lifecycle.get_order(
        order_number, customer_id=_customer_scope(principal),
    ).to_dict())


def post_cancel_order(
    order_number: str,
    body: dict,
    dependencies,
    headers: dict[str, Any] | None = None,
) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = CancelOrderRequest(
            order_number=order_number,
            customer_id=principal.actor_id,
            reason=str(body.get("reason") or ""),
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.cancel_order(request).to_dict()

    return _run(_call)


def post_confirm_delivery(order_number: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = ConfirmDeliveryRequest(
            order_number=order_number,
            customer_id=principal.actor_id,
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.confirm_delivery(request).to_dict()

    return _run(_call)


def post_update_status(
    order_number: str,
    body: dict,
    dependencies,
    headers: dict[str, Any] | None = None,
) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = UpdateOrderStatusRequest(
            order_number=order_number,
            status=str(body["status"]),
            source=UPDATE_SOURCE_ADMIN,
            actor_id=principal.actor_id,
            message=str(body.get("message") or ""),
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.update_status(request).to_dict()

    return _run(_call)


def post_refund_order(
    order_number: str,
    body: dict,
    dependencies,
    headers: dict[str, Any] | None = None,
) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        amount = body.get("amount")
        order = dependencies.refunds.refund_order(
            order_number,
            amount=None if amount is None else str(amount),
            deduct_shipping=bool(body.get("deduct_shipping", False)),
            reason=str(body.get("reason") or ""),
            requested_by=principal.actor_id,
        )
        return order.to_dict()

    return _run(_call)


def post_retry_shipment(order_number: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal
    return _run(lambda: dependencies.fulfillment.retry_shipment(order_number).to_dict())


# ══════════════════════════════════════════════════════════════
# PAYMENTS
# ══════════════════════════════════════════════════════════════

def post_verify_payment(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = ConfirmPaymentRequest(
            order_number=str(_first(body, "order_number", default="")),
            gateway_order_id=str(_first(body, "gateway_order_id", "razorpay_order_id", default="")),
            payment_id=str(_first(body, "payment_id", "razorpay_payment_id", default="")),
            signature=str(_first(body, "signature", "razorpay_signature", default="")),
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.confirm_payment(request).to_dict()

    return _run(_call)


def post_payment_failure(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = RecordPaymentFailureRequest(
            order_number=str(body["order_number"]),
            gateway_order_id=_first(body, "gateway_order_id", "razorpay_order_id"),
            payment_id=_first(body, "payment_id", "razorpay_payment_id"),
            reason=str(body.get("reason") or "Payment failed"),
            issued_at=dependencies.now(),
        )
        return dependencies.lifecycle.record_payment_failure(request).to_dict()

    return _run(_call)


# ══════════════════════════════════════════════════════════════
# CARRIER WEBHOOK
# ══════════════════════════════════════════════════════════════

def post_carrier_webhook(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    secret = normalize_headers(headers).get(HEADER_WEBHOOK_SECRET)
    return _run(lambda: dependencies.tracking.handle_webhook(body, secret).to_dict())


# ══════════════════════════════════════════════════════════════
# EXCHANGES
# ══════════════════════════════════════════════════════════════

def post_submit_exchange(body: dict, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = SubmitExchangeRequest(
            order_number=str(body["order_number"]),
            customer_id=principal.actor_id,
            reason=str(body.get("reason") or ""),
            items=tuple(RequestedItem.from_dict(item) for item in body.get("items") or ()),
            evidence_images=tuple(str(url) for url in body.get("evidence_images") or ()),
            issued_at=dependencies.now(),
        )
        return dependencies.exchanges.submit(request).to_dict()

    return _run(_call, status=201)


def get_exchange(exchange_id: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal
    return _run(lambda: dependencies.exchanges.get(
        exchange_id, customer_id=_customer_scope(principal),
    ).to_dict())


def get_exchange_eligibility(order_number: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies)
    if isinstance(principal, HttpApiResult):
        return principal
    return _run(lambda: dependencies.exchanges.check_eligibility(
        order_number, customer_id=_customer_scope(principal),
    ).to_dict())


def post_approve_exchange(
    exchange_id: str,
    body: dict,
    dependencies,
    headers: dict[str, Any] | None = None,
) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = ApproveExchangeRequest(
            exchange_id=exchange_id,
            admin_id=principal.actor_id,
            with_replacement=bool(body.get("with_replacement", True)),
            issued_at=dependencies.now(),
        )
        return dependencies.exchanges.approve(request).to_dict()

    return _run(_call)


def post_reject_exchange(
    exchange_id: str,
    body: dict,
    dependencies,
    headers: dict[str, Any] | None = None,
) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = RejectExchangeRequest(
            exchange_id=exchange_id,
            admin_id=principal.actor_id,
            reason=str(body.get("reason") or ""),
            issued_at=dependencies.now(),
        )
        return dependencies.exchanges.reject(request).to_dict()

    return _run(_call)


def post_reverse_received(exchange_id: str, dependencies, headers: dict[str, Any] | None = None) -> HttpApiResult:
    principal = _principal(headers, dependencies, admin=True)
    if isinstance(principal, HttpApiResult):
        return principal

    def _call():
        request = MarkReverseReceivedRequest(
            exchange_id=exchange_id,
            admin_id=principal.actor_id,
            issued_at=dependencies.now(),
        )
        return dependencies.exchanges.mark_reverse_received(request).to_dict()

    return _run(_call)
