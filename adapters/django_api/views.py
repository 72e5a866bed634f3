"""
Evolv Django Adapter Views
==========================
Pass-through HTTP views over core/http_api handlers.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from adapters.django_api.wiring import build_dependencies
from core.commands.rejection import ReasonCode
from core.http_api.contracts import HttpApiResult
from core.http_api.errors import error_response
from core.http_api.handlers import (
    get_exchange,
    get_exchange_eligibility,
    get_order,
    post_apply_points,
    post_apply_promo,
    post_approve_exchange,
    post_cancel_order,
    post_carrier_webhook,
    post_confirm_delivery,
    post_payment_failure,
    post_place_order,
    post_pricing_preview,
    post_refund_order,
    post_reject_exchange,
    post_retry_shipment,
    post_reverse_received,
    post_submit_exchange,
    post_update_status,
    post_verify_payment,
)


def _headers_from_request(request: HttpRequest) -> dict[str, str]:
    return {str(key): str(value) for key, value in request.headers.items()}


def _json_error(code: str, message: str, status: int = 400) -> JsonResponse:
    return JsonResponse(
        error_response(code=code, message=message, details={}),
        status=status,
    )


def _parse_json_body(request: HttpRequest) -> dict[str, Any]:
    """Decimals stay exact: JSON numbers are parsed as Decimal, never float."""
    if not request.body:
        return {}
    try:
        parsed = json.loads(request.body.decode("utf-8"), parse_float=Decimal)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("Request body must be valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Request body must be a JSON object.")
    return parsed


def _respond(result: HttpApiResult) -> JsonResponse:
    return JsonResponse(result.body, status=result.status)


def _method_not_allowed() -> JsonResponse:
    return _json_error(
        "METHOD_NOT_ALLOWED",
        "Method not allowed for this endpoint.",
        status=405,
    )


def _dispatch_write(request: HttpRequest, handler, *path_args) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    try:
        body = _parse_json_body(request)
    except ValueError as exc:
        return _json_error(ReasonCode.INVALID_REQUEST, str(exc), status=400)
    return _respond(handler(
        *path_args, body, build_dependencies(), headers=_headers_from_request(request),
    ))


def _dispatch_action(request: HttpRequest, handler, *path_args) -> JsonResponse:
    """POST endpoint whose body carries nothing the handler needs."""
    if request.method != "POST":
        return _method_not_allowed()
    return _respond(handler(
        *path_args, build_dependencies(), headers=_headers_from_request(request),
    ))


def _dispatch_read(request: HttpRequest, handler, *path_args) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    return _respond(handler(
        *path_args, build_dependencies(), headers=_headers_from_request(request),
    ))


# ── Pricing & discounts ───────────────────────────────────────

@csrf_exempt
def pricing_preview_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_pricing_preview)


@csrf_exempt
def apply_promo_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_apply_promo)


@csrf_exempt
def apply_points_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_apply_points)


# ── Orders ────────────────────────────────────────────────────

@csrf_exempt
def orders_create_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_place_order)


@csrf_exempt
def order_detail_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_read(request, get_order, order_number)


@csrf_exempt
def order_cancel_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_write(request, post_cancel_order, order_number)


@csrf_exempt
def order_confirm_delivery_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_action(request, post_confirm_delivery, order_number)


@csrf_exempt
def order_status_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_write(request, post_update_status, order_number)


@csrf_exempt
def order_refund_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_write(request, post_refund_order, order_number)


@csrf_exempt
def order_retry_shipment_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_action(request, post_retry_shipment, order_number)


# ── Payments ──────────────────────────────────────────────────

@csrf_exempt
def payment_verify_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_verify_payment)


@csrf_exempt
def payment_failure_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_payment_failure)


# ── Carrier ───────────────────────────────────────────────────

@csrf_exempt
def shipping_webhook_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_carrier_webhook)


# ── Exchanges ─────────────────────────────────────────────────

@csrf_exempt
def exchanges_create_view(request: HttpRequest) -> JsonResponse:
    return _dispatch_write(request, post_submit_exchange)


@csrf_exempt
def exchange_detail_view(request: HttpRequest, exchange_id: str) -> JsonResponse:
    return _dispatch_read(request, get_exchange, exchange_id)


@csrf_exempt
def exchange_eligibility_view(request: HttpRequest, order_number: str) -> JsonResponse:
    return _dispatch_read(request, get_exchange_eligibility, order_number)


@csrf_exempt
def exchange_approve_view(request: HttpRequest, exchange_id: str) -> JsonResponse:
    return _dispatch_write(request, post_approve_exchange, exchange_id)


@csrf_exempt
def exchange_reject_view(request: HttpRequest, exchange_id: str) -> JsonResponse:
    return _dispatch_write(request, post_reject_exchange, exchange_id)


@csrf_exempt
def exchange_reverse_received_view(request: HttpRequest, exchange_id: str) -> JsonResponse:
    return _dispatch_action(request, post_reverse_received, exchange_id)
