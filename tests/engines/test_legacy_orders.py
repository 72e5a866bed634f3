"""Evolv Orders Engine tests: normalizing older stored order documents."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from engines.orders import normalize_legacy_order
from engines.orders.model import (
    FULFILLMENT_CREATED,
    FULFILLMENT_NOT_SCHEDULED,
    ORDER_CANCELLED,
    ORDER_SHIPPED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
)


def legacy_doc(**overrides):
    doc = {
        "orderNumber": "NSD250101000007",
        "customer": {"_id": "64f0c0ffee", "name": "Asha"},
        "items": [
            {"product": {"_id": "TEE-1", "name": "Linen Tee"}, "size": "M", "color": "White",
             "price": 999, "quantity": 2},
        ],
        "shippingAddress": {
            "firstName": "Asha", "lastName": "Patel", "email": "asha@example.com",
            "phone": "9876543210", "street": "12 Ring Road", "city": "Surat",
            "state": "Gujarat", "zipCode": "395007",
        },
        "tax": "95.14",
        "shipping": {"cost": 100},
        "total": "2098.00",
        "status": "shipped",
        "payment": {
            "status": "paid",
            "method": "razorpay",
            "razorpay": {"orderId": "order_abc", "paymentId": "pay_abc"},
            "paidAt": "2025-01-01T10:05:00Z",
        },
        "shipment": {"awb": "1234567890", "shipmentId": "SHP-1", "status": "In Transit"},
        "createdAt": "2025-01-01T10:00:00Z",
    }
    doc.update(overrides)
    return doc


class TestShapes:
    def test_canonical_fields(self):
        order = normalize_legacy_order(legacy_doc())
        assert order.order_number == "NSD250101000007"
        assert order.customer_id == "64f0c0ffee"
        assert order.status == ORDER_SHIPPED
        assert order.items[0].product_id == "TEE-1"
        assert order.items[0].name == "Linen Tee"
        assert order.pricing.subtotal_inclusive == Decimal("1998.00")
        assert order.pricing.base_amount == Decimal("1902.86")
        assert order.total == Decimal("2098.00")
        assert order.payment.status == PAYMENT_PAID
        assert order.payment.transaction_id == "pay_abc"
        assert order.payment.paid_at == datetime(2025, 1, 1, 10, 5, tzinfo=timezone.utc)
        assert order.billing_address == order.shipping_address
        assert order.fulfillment.status == FULFILLMENT_CREATED
        assert order.fulfillment.carrier_status == "In Transit"

    def test_nested_shipping_cost(self):
        assert normalize_legacy_order(legacy_doc()).pricing.shipping_cost == Decimal("100.00")

    @pytest.mark.parametrize("key", ["shippingCost", "shipping_cost", "shippingCharges"])
    def test_flat_shipping_cost(self, key):
        doc = legacy_doc(shipping=None, **{key: "75.5"})
        assert normalize_legacy_order(doc).pricing.shipping_cost == Decimal("75.50")

    def test_missing_shipping_cost_is_zero(self):
        doc = legacy_doc(shipping=None)
        assert normalize_legacy_order(doc).pricing.shipping_cost == Decimal("0")

    def test_tax_total_key(self):
        doc = legacy_doc(tax=None, taxTotal="95.14")
        assert normalize_legacy_order(doc).pricing.tax_amount == Decimal("95.14")

    def test_home_state_tax_split_evenly(self):
        breakdown = normalize_legacy_order(legacy_doc()).pricing.tax_breakdown
        assert breakdown.cgst == Decimal("47.57")
        assert breakdown.sgst == Decimal("47.57")

    def test_top_level_gst_components_win(self):
        doc = legacy_doc(cgst=None, sgst=None, igst="95.14")
        breakdown = normalize_legacy_order(doc).pricing.tax_breakdown
        assert breakdown.igst == Decimal("95.14")
        assert breakdown.cgst == Decimal("0")

    def test_plain_customer_reference(self):
        assert normalize_legacy_order(legacy_doc(customer="cust-9")).customer_id == "cust-9"

    def test_no_shipment(self):
        order = normalize_legacy_order(legacy_doc(shipment=None, status="confirmed"))
        assert order.fulfillment.status == FULFILLMENT_NOT_SCHEDULED
        assert order.fulfillment.awb is None


class TestStatuses:
    def test_refunded_order_becomes_cancelled_with_refunded_payment(self):
        order = normalize_legacy_order(legacy_doc(status="refunded"))
        assert order.status == ORDER_CANCELLED
        assert order.payment.status == PAYMENT_REFUNDED

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            normalize_legacy_order(legacy_doc(status="returned"))

    def test_unknown_payment_status(self):
        with pytest.raises(ValueError):
            normalize_legacy_order(legacy_doc(payment={"status": "authorized"}))

    def test_order_number_required(self):
        with pytest.raises(ValueError):
            normalize_legacy_order(legacy_doc(orderNumber=None))


class TestDiscounts:
    def test_promo_code(self):
        doc = legacy_doc(discount={"code": " save10 ", "amount": 199.8, "type": "percentage"})
        order = normalize_legacy_order(doc)
        assert order.discount.promo_code == "SAVE10"
        assert order.discount.amount == Decimal("199.80")
        assert order.discount.points_redeemed == 0

    def test_points_discount_has_no_code(self):
        doc = legacy_doc(discount={"type": "evolv_points", "code": "POINTS", "amount": 150, "evolvPointsUsed": 150})
        order = normalize_legacy_order(doc)
        assert order.discount.promo_code is None
        assert order.discount.points_redeemed == 150
