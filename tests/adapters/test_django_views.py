"""
Tests for the Django adapter — routing, JSON parsing and the management
commands, over the same wired storefront the engine tests use.
"""

import json

import pytest
from django.core.management import call_command

from adapters.django_api import views, wiring
from adapters.django_api.management.commands import (
    expire_pending_orders,
    reconcile_shipments,
    retry_pending_shipments,
)

SHIPPING = {
    "firstName": "Asha", "lastName": "Patel", "email": "asha@example.com",
    "phone": "9876543210", "street": "12 Ring Road", "city": "Surat",
    "state": "Gujarat", "zipCode": "395007",
}


@pytest.fixture
def api(monkeypatch, dependencies):
    monkeypatch.setattr(views, "build_dependencies", lambda: dependencies)
    return dependencies


def post(client, path, body=None, key="cust-key", **extra):
    if key:
        extra["HTTP_X_API_KEY"] = key
    return client.post(
        f"/v1/{path}",
        data=json.dumps(body or {}),
        content_type="application/json",
        **extra,
    )


def place_order(client):
    response = post(client, "orders", {
        "items": [{"product_id": "TEE-1", "size": "M", "color": "White", "unit_price": 999.00, "quantity": 1}],
        "shipping_address": SHIPPING,
        "client_total": 1099.00,
    })
    assert response.status_code == 201
    return response.json()["data"]


# ── Routing ───────────────────────────────────────────────────

class TestRouting:
    def test_place_and_read_order(self, client, api):
        data = place_order(client)
        number = data["order"]["order_number"]

        response = client.get(f"/v1/orders/{number}", HTTP_X_API_KEY="cust-key")
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "pending"

        other = client.get(f"/v1/orders/{number}", HTTP_X_API_KEY="other-key")
        assert other.status_code == 404
        assert other.json()["ok"] is False

    def test_json_numbers_stay_exact(self, client, api):
        response = post(client, "pricing/preview", {
            "items": [{"product_id": "DRESS-1", "unit_price": 2999.99, "quantity": 3}],
            "shipping_state": "Gujarat",
        })
        assert response.status_code == 200
        assert response.json()["data"]["breakdown"]["subtotal_inclusive"] == "8999.97"

    def test_wrong_method(self, client, api):
        response = client.get("/v1/orders", HTTP_X_API_KEY="cust-key")
        assert response.status_code == 405
        assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"

    def test_invalid_json(self, client, api):
        response = client.post(
            "/v1/discounts/promo", data="{not json", content_type="application/json", HTTP_X_API_KEY="cust-key",
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_json_array_body_rejected(self, client, api):
        response = client.post(
            "/v1/discounts/promo", data="[]", content_type="application/json", HTTP_X_API_KEY="cust-key",
        )
        assert response.status_code == 400

    def test_missing_api_key(self, client, api):
        response = post(client, "discounts/promo", {"code": "SAVE10", "subtotal": "1000"}, key=None)
        assert response.status_code == 401

    def test_admin_only_route(self, client, api):
        data = place_order(client)
        number = data["order"]["order_number"]
        assert post(client, f"orders/{number}/retry-shipment").status_code == 403


class TestPaymentAndCarrierRoutes:
    def test_verify_then_webhook(self, client, api, store):
        data = place_order(client)
        number = data["order"]["order_number"]
        gateway_order_id = data["payment"]["gateway_order_id"]
        store.gateway.capture(gateway_order_id, "pay_1")

        verified = post(client, "payments/verify", {
            "order_number": number,
            "razorpay_order_id": gateway_order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": store.gateway.sign(gateway_order_id, "pay_1"),
        })
        assert verified.status_code == 200
        awb = verified.json()["data"]["fulfillment"]["awb"]

        denied = post(client, "shipping/webhook", {"awb": awb, "status": "Manifested"}, key=None)
        assert denied.status_code == 401

        scanned = post(
            client, "shipping/webhook", {"awb": awb, "status": "Manifested"},
            key=None, HTTP_X_WEBHOOK_SECRET="hook-secret",
        )
        assert scanned.status_code == 200
        assert scanned.json()["data"]["status"] == "processing"

    def test_exchange_routes(self, client, api, store):
        order = store.delivered_order()
        eligibility = client.get(
            f"/v1/exchanges/eligibility/{order.order_number}", HTTP_X_API_KEY="cust-key",
        )
        assert eligibility.json()["data"]["eligible"] is True

        created = post(client, "exchanges", {"order_number": order.order_number, "reason": "Too tight"})
        assert created.status_code == 201
        exchange_id = created.json()["data"]["exchange_id"]

        approved = post(client, f"exchanges/{exchange_id}/approve", {"with_replacement": False}, key="admin-key")
        assert approved.json()["data"]["logistics"] == "pickup_scheduled"

        received = post(client, f"exchanges/{exchange_id}/reverse-received", key="admin-key")
        assert received.json()["data"]["refund_amount"] == "999.00"

        detail = client.get(f"/v1/exchanges/{exchange_id}", HTTP_X_API_KEY="cust-key")
        assert detail.status_code == 200


# ── Management commands ──────────────────────────────────────

class TestManagementCommands:
    def test_expire_pending_orders(self, monkeypatch, capsys, dependencies, store):
        monkeypatch.setattr(expire_pending_orders, "build_dependencies", lambda: dependencies)
        placed = store.place()
        store.clock.advance(hours=12)
        call_command("expire_pending_orders")
        out = capsys.readouterr().out
        assert "Expired 1 order(s)." in out
        assert placed.order.order_number in out
        assert store.orders.get(placed.order.order_number).status == "cancelled"

    def test_retry_pending_shipments(self, monkeypatch, capsys, dependencies, store, transient):
        monkeypatch.setattr(retry_pending_shipments, "build_dependencies", lambda: dependencies)
        store.carrier.errors = [transient(), transient(), transient()]
        store.paid_order()
        call_command("retry_pending_shipments")
        assert "Booked 1 shipment(s)." in capsys.readouterr().out

    def test_reconcile_shipments(self, monkeypatch, capsys, dependencies, store):
        monkeypatch.setattr(reconcile_shipments, "build_dependencies", lambda: dependencies)
        order = store.paid_order()
        store.carrier.tracking[order.fulfillment.awb] = "Manifested"
        call_command("reconcile_shipments")
        assert "Polled 1 shipment(s)." in capsys.readouterr().out
        assert store.orders.get(order.order_number).status == "processing"


# ── Wiring ────────────────────────────────────────────────────

class TestWiring:
    def test_api_keys_from_settings(self, settings):
        settings.STOREFRONT_API_KEYS = {"k1": {"actor_id": "ops-1", "actor_type": "ADMIN"}}
        wiring.reset_dependencies()
        try:
            built = wiring.build_dependencies()
            assert built.auth_provider.resolve_api_key("k1").is_admin
            assert built.auth_provider.resolve_api_key(wiring.DEV_ADMIN_API_KEY) is None
            assert wiring.build_dependencies() is built
        finally:
            wiring.reset_dependencies()

    def test_dev_keys_without_settings(self, settings):
        settings.STOREFRONT_API_KEYS = None
        wiring.reset_dependencies()
        try:
            provider = wiring.build_dependencies().auth_provider
            assert provider.resolve_api_key(wiring.DEV_CUSTOMER_API_KEY).actor_type == "CUSTOMER"
        finally:
            wiring.reset_dependencies()
