"""
Evolv Orders Engine
===================
Order placement, payment confirmation, cancellation and expiry,
forward-only fulfillment progress, carrier tracking and delivery
confirmation.
"""

from engines.orders.catalog import CatalogProduct, InMemoryCatalog, check_line_item
from engines.orders.commands import (
    CancelOrderRequest,
    ConfirmDeliveryRequest,
    ConfirmPaymentRequest,
    ExpireOrderRequest,
    PlaceOrderRequest,
    UPDATE_SOURCE_ADMIN,
    UPDATE_SOURCE_CARRIER,
    RecordPaymentFailureRequest,
    UpdateOrderStatusRequest,
)
from engines.orders.fulfillment import FulfillmentService, shipment_request_for
from engines.orders.legacy import normalize_legacy_order
from engines.orders.model import (
    Address,
    Order,
    OrderItem,
)
from engines.orders.refunds import RefundService
from engines.orders.repository import OrderRepository
from engines.orders.services import OrderLifecycleService, PlacedOrder, Quote, order_lock_key
from engines.orders.tracking import ScanOutcome, ShipmentTrackingService

__all__ = [
    "Address",
    "CancelOrderRequest",
    "CatalogProduct",
    "ConfirmDeliveryRequest",
    "ConfirmPaymentRequest",
    "ExpireOrderRequest",
    "FulfillmentService",
    "InMemoryCatalog",
    "Order",
    "OrderItem",
    "OrderLifecycleService",
    "OrderRepository",
    "PlaceOrderRequest",
    "PlacedOrder",
    "Quote",
    "RecordPaymentFailureRequest",
    "RefundService",
    "ScanOutcome",
    "ShipmentTrackingService",
    "UPDATE_SOURCE_ADMIN",
    "UPDATE_SOURCE_CARRIER",
    "UpdateOrderStatusRequest",
    "check_line_item",
    "normalize_legacy_order",
    "order_lock_key",
    "shipment_request_for",
]
