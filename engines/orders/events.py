"""
Evolv Orders Engine — Event Types
=================================
Facts published after an order transition commits. Notification and
audit subscribers listen for these; none of them can undo a transition.
"""

# ── Event Types ───────────────────────────────────────────────

ORDER_PLACED_V1 = "orders.order.placed.v1"
ORDER_CONFIRMED_V1 = "orders.order.confirmed.v1"
ORDER_CANCELLED_V1 = "orders.order.cancelled.v1"
ORDER_STATUS_CHANGED_V1 = "orders.order.status_changed.v1"
ORDER_DELIVERED_V1 = "orders.order.delivered.v1"
PAYMENT_FAILED_V1 = "orders.payment.failed.v1"
PAYMENT_RECONCILIATION_REQUIRED_V1 = "orders.payment.reconciliation_required.v1"
SHIPMENT_CREATED_V1 = "orders.shipment.created.v1"
SHIPMENT_RETRY_PENDING_V1 = "orders.shipment.retry_pending.v1"
SHIPMENT_MANUAL_INTERVENTION_V1 = "orders.shipment.manual_intervention.v1"
CARRIER_ANOMALY_V1 = "orders.shipment.anomaly.v1"
REFUND_INITIATED_V1 = "orders.refund.initiated.v1"
REFUND_COMPLETED_V1 = "orders.refund.completed.v1"
REFUND_FAILED_V1 = "orders.refund.failed.v1"

ALL_EVENT_TYPES = (
    ORDER_PLACED_V1,
    ORDER_CONFIRMED_V1,
    ORDER_CANCELLED_V1,
    ORDER_STATUS_CHANGED_V1,
    ORDER_DELIVERED_V1,
    PAYMENT_FAILED_V1,
    PAYMENT_RECONCILIATION_REQUIRED_V1,
    SHIPMENT_CREATED_V1,
    SHIPMENT_RETRY_PENDING_V1,
    SHIPMENT_MANUAL_INTERVENTION_V1,
    CARRIER_ANOMALY_V1,
    REFUND_INITIATED_V1,
    REFUND_COMPLETED_V1,
    REFUND_FAILED_V1,
)

# ── Command → Event Mapping ───────────────────────────────────

COMMAND_TO_EVENT_TYPE = {
    "orders.order.place.request": ORDER_PLACED_V1,
    "orders.payment.confirm.request": ORDER_CONFIRMED_V1,
    "orders.payment.fail.request": PAYMENT_FAILED_V1,
    "orders.order.cancel.request": ORDER_CANCELLED_V1,
    "orders.order.expire.request": ORDER_CANCELLED_V1,
    "orders.status.update.request": ORDER_STATUS_CHANGED_V1,
    "orders.delivery.confirm.request": ORDER_DELIVERED_V1,
}


# ── Payload Builders ──────────────────────────────────────────

def order_payload(order, **extra) -> dict:
    payload = {
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "customer_email": order.shipping_address.email,
        "customer_name": order.shipping_address.full_name,
        "status": order.status,
        "payment_status": order.payment.status,
        "total": format(order.total, "f"),
        "message": order.last_message,
    }
    payload.update(extra)
    return payload
