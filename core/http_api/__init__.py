"""
Evolv HTTP API - Public API
===========================
"""

from core.http_api.contracts import (
    HttpApiErrorBody,
    HttpApiResponse,
    HttpApiResult,
)
from core.http_api.dependencies import StorefrontDependencies
from core.http_api.errors import (
    engine_error_response,
    error_response,
    map_rejection_reason,
    rejection_response,
    success_response,
)
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

__all__ = [
    "HttpApiErrorBody",
    "HttpApiResponse",
    "HttpApiResult",
    "StorefrontDependencies",
    "engine_error_response",
    "error_response",
    "map_rejection_reason",
    "rejection_response",
    "success_response",
    "get_exchange",
    "get_exchange_eligibility",
    "get_order",
    "post_apply_points",
    "post_apply_promo",
    "post_approve_exchange",
    "post_cancel_order",
    "post_carrier_webhook",
    "post_confirm_delivery",
    "post_payment_failure",
    "post_place_order",
    "post_pricing_preview",
    "post_refund_order",
    "post_reject_exchange",
    "post_retry_shipment",
    "post_reverse_received",
    "post_submit_exchange",
    "post_update_status",
    "post_verify_payment",
]
