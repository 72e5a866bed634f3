"""
Evolv Exchange Engine — Event Types
===================================
Published after an exchange decision or logistics step commits.
"""

# ── Event Types ───────────────────────────────────────────────

EXCHANGE_REQUESTED_V1 = "exchange.request.submitted.v1"
EXCHANGE_APPROVED_V1 = "exchange.request.approved.v1"
EXCHANGE_REJECTED_V1 = "exchange.request.rejected.v1"
EXCHANGE_PICKUP_SCHEDULED_V1 = "exchange.pickup.scheduled.v1"
EXCHANGE_PICKUP_FAILED_V1 = "exchange.pickup.failed.v1"
EXCHANGE_RECEIVED_V1 = "exchange.item.received.v1"
EXCHANGE_REPLACEMENT_SHIPPED_V1 = "exchange.replacement.shipped.v1"
EXCHANGE_REPLACEMENT_FAILED_V1 = "exchange.replacement.failed.v1"
EXCHANGE_REFUND_INITIATED_V1 = "exchange.refund.initiated.v1"

ALL_EVENT_TYPES = (
    EXCHANGE_REQUESTED_V1,
    EXCHANGE_APPROVED_V1,
    EXCHANGE_REJECTED_V1,
    EXCHANGE_PICKUP_SCHEDULED_V1,
    EXCHANGE_PICKUP_FAILED_V1,
    EXCHANGE_RECEIVED_V1,
    EXCHANGE_REPLACEMENT_SHIPPED_V1,
    EXCHANGE_REPLACEMENT_FAILED_V1,
    EXCHANGE_REFUND_INITIATED_V1,
)

COMMAND_TO_EVENT_TYPE = {
    "exchange.request.submit.request": EXCHANGE_REQUESTED_V1,
    "exchange.request.approve.request": EXCHANGE_APPROVED_V1,
    "exchange.request.reject.request": EXCHANGE_REJECTED_V1,
    "exchange.item.receive.request": EXCHANGE_RECEIVED_V1,
}


def exchange_payload(exchange, order, **extra) -> dict:
    payload = {
        "exchange_id": exchange.exchange_id,
        "order_number": exchange.order_number,
        "customer_id": exchange.customer_id,
        "customer_email": order.shipping_address.email if order else "",
        "status": exchange.status,
        "logistics": exchange.logistics,
        "rejection_reason": exchange.rejection_reason,
    }
    payload.update(extra)
    return payload
