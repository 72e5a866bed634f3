"""
Evolv Orders Engine — Legacy Record Normalization
=================================================
Older order documents stored the same facts under several shapes:
shipping cost as shipping.cost / shippingCost / shipping_cost /
shippingCharges, tax as tax / taxTotal, GST components at the top level,
camelCase everywhere. normalize_legacy_order() is the single place that
reads those shapes; everything downstream sees the canonical Order.

Stored amounts are taken as recorded, not recomputed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from core.primitives.money import ZERO, round_money
from engines.orders.model import (
    FULFILLMENT_CREATED,
    FULFILLMENT_NOT_SCHEDULED,
    ORDER_CANCELLED,
    ORDER_WORKFLOW,
    PAYMENT_METHOD_GATEWAY,
    PAYMENT_REFUNDED,
    PAYMENT_WORKFLOW,
    Address,
    FulfillmentRecord,
    Order,
    OrderDiscount,
    OrderItem,
    PaymentRecord,
    TimelineEntry,
)
from engines.pricing import PriceBreakdown, TaxBreakdown, is_home_state

logger = logging.getLogger("evolv.orders")

SHIPPING_COST_KEYS = ("shippingCost", "shipping_cost", "shippingCharges")
TAX_KEYS = ("tax", "taxTotal")

LEGACY_STATUS_REFUNDED = "refunded"


def _money(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    return round_money(Decimal(str(value)))


def _first_present(doc: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    for key in keys:
        if doc.get(key) is not None:
            return doc[key]
    return None


def _ref_id(value: Any) -> str:
    """Mongo references arrive either as an id or as a populated document."""
    if isinstance(value, dict):
        return str(value.get("_id") or value.get("id") or "")
    return str(value or "")


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def legacy_shipping_cost(doc: Dict[str, Any]) -> Decimal:
    shipping = doc.get("shipping")
    if isinstance(shipping, dict) and shipping.get("cost") is not None:
        return _money(shipping["cost"])
    return _money(_first_present(doc, SHIPPING_COST_KEYS))


def legacy_tax_breakdown(doc: Dict[str, Any], tax: Decimal, state: str) -> TaxBreakdown:
    if any(doc.get(k) is not None for k in ("cgst", "sgst", "igst")):
        return TaxBreakdown(
            cgst=_money(doc.get("cgst")),
            sgst=_money(doc.get("sgst")),
            igst=_money(doc.get("igst")),
        )
    if is_home_state(state):
        half = round_money(tax / 2)
        return TaxBreakdown(cgst=half, sgst=tax - half)
    return TaxBreakdown(igst=tax)


def _item(raw: Dict[str, Any]) -> OrderItem:
    product = raw.get("product")
    name = raw.get("name") or (product.get("name") if isinstance(product, dict) else "") or ""
    return OrderItem(
        product_id=_ref_id(product),
        name=name,
        size=str(raw.get("size") or ""),
        color=str(raw.get("color") or ""),
        unit_price=_money(raw.get("price")),
        quantity=int(raw.get("quantity") or 1),
    )


def _status(doc: Dict[str, Any]) -> tuple:
    """Legacy 'refunded' was an order status; it is a payment status now."""
    status = doc.get("status") or "pending"
    payment_status = (doc.get("payment") or {}).get("status") or "pending"
    if status == LEGACY_STATUS_REFUNDED:
        return ORDER_CANCELLED, PAYMENT_REFUNDED
    if status not in ORDER_WORKFLOW.states:
        raise ValueError(f"Unknown legacy order status {status!r}.")
    if payment_status not in PAYMENT_WORKFLOW.states:
        raise ValueError(f"Unknown legacy payment status {payment_status!r}.")
    return status, payment_status


def normalize_legacy_order(doc: Dict[str, Any]) -> Order:
    order_number = doc.get("orderNumber") or doc.get("order_number")
    if not order_number:
        raise ValueError("Legacy order has no order number.")

    shipping_address = Address.from_dict(doc.get("shippingAddress") or {})
    billing_raw = doc.get("billingAddress")
    billing_address = Address.from_dict(billing_raw) if billing_raw else shipping_address
    items = tuple(_item(raw) for raw in doc.get("items") or ())

    subtotal_inclusive = sum((i.line_total for i in items), ZERO)
    tax = _money(_first_present(doc, TAX_KEYS))
    discount_raw = doc.get("discount") or {}
    pricing = PriceBreakdown(
        base_amount=subtotal_inclusive - tax,
        tax_amount=tax,
        tax_breakdown=legacy_tax_breakdown(doc, tax, shipping_address.state),
        shipping_cost=legacy_shipping_cost(doc),
        discount_amount=_money(discount_raw.get("amount")),
        total=_money(doc.get("total")),
        subtotal_inclusive=subtotal_inclusive,
    )

    points_used = int(discount_raw.get("evolvPointsUsed") or 0)
    promo_code = None
    if discount_raw.get("type") != "evolv_points" and discount_raw.get("code"):
        promo_code = str(discount_raw["code"]).strip().upper()

    status, payment_status = _status(doc)
    payment_raw = doc.get("payment") or {}
    gateway_raw = payment_raw.get("razorpay") or {}
    payment = PaymentRecord(
        status=payment_status,
        method=payment_raw.get("method") or PAYMENT_METHOD_GATEWAY,
        gateway_order_id=gateway_raw.get("orderId"),
        transaction_id=payment_raw.get("transactionId") or gateway_raw.get("paymentId"),
        paid_at=_timestamp(payment_raw.get("paidAt")),
    )

    shipment = doc.get("shipment") or {}
    fulfillment = FulfillmentRecord(
        status=FULFILLMENT_CREATED if shipment.get("awb") else FULFILLMENT_NOT_SCHEDULED,
        shipment_id=shipment.get("shipmentId"),
        awb=shipment.get("awb"),
        tracking_url=shipment.get("trackingUrl"),
        carrier_status=shipment.get("status"),
    )

    created_at = _timestamp(doc.get("createdAt")) or datetime.now(timezone.utc)
    timeline = tuple(
        TimelineEntry(
            status=entry.get("status") or status,
            message=entry.get("message") or "",
            timestamp=_timestamp(entry.get("timestamp")) or created_at,
            updated_by=_ref_id(entry.get("updatedBy")) or "system",
        )
        for entry in doc.get("timeline") or ()
    )

    order = Order(
        order_number=str(order_number),
        customer_id=_ref_id(doc.get("customer")),
        items=items,
        shipping_address=shipping_address,
        billing_address=billing_address,
        pricing=pricing,
        discount=OrderDiscount(
            promo_code=promo_code,
            points_redeemed=points_used,
            amount=pricing.discount_amount,
        ),
        created_at=created_at,
        status=status,
        payment=payment,
        fulfillment=fulfillment,
        timeline=timeline,
        delivered_at=_timestamp(doc.get("deliveredAt")),
        cancelled_at=_timestamp(doc.get("cancelledAt")),
        delivery_bonus_awarded=bool(doc.get("deliveryBonusAwarded")),
        points_earned=int(doc.get("evolvPointsEarned") or 0),
    )
    logger.debug("Normalized legacy order %s", order.order_number)
    return order
