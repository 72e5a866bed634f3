"""Evolv Orders Engine tests: shipment booking, carrier tracking, status updates and delivery."""

import threading
from datetime import timedelta

import pytest

from core.commands.rejection import ReasonCode
from core.errors import ConflictError, NotFoundError, ValidationError
from engines.orders import (
    UPDATE_SOURCE_ADMIN,
    CancelOrderRequest,
    ConfirmDeliveryRequest,
    UpdateOrderStatusRequest,
)
from engines.orders.events import (
    CARRIER_ANOMALY_V1,
    ORDER_DELIVERED_V1,
    ORDER_STATUS_CHANGED_V1,
    SHIPMENT_CREATED_V1,
    SHIPMENT_MANUAL_INTERVENTION_V1,
    SHIPMENT_RETRY_PENDING_V1,
)
from engines.orders.jobs import reconcile_shipments, retry_pending_shipments
from engines.orders.model import (
    FULFILLMENT_CREATED,
    FULFILLMENT_MANUAL,
    FULFILLMENT_RETRY_PENDING,
    FULFILLMENT_SCHEDULING,
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
)
from engines.orders.services import SCAN_ANOMALY, SCAN_APPLIED, SCAN_DUPLICATE, SCAN_UNCHANGED

WEBHOOK_SECRET = "hook-secret"


def admin_update(store, order_number, status):
    return store.lifecycle.update_status(UpdateOrderStatusRequest(
        order_number=order_number,
        status=status,
        issued_at=store.clock.now_utc(),
        source=UPDATE_SOURCE_ADMIN,
        actor_id="admin-1",
    ))


def confirm_delivery(store, order_number, customer_id="cust-1"):
    return store.lifecycle.confirm_delivery(ConfirmDeliveryRequest(
        order_number=order_number, customer_id=customer_id, issued_at=store.clock.now_utc(),
    ))


# ── Shipment booking ──────────────────────────────────────────

class TestShipmentBooking:
    def test_payment_books_shipment(self, store):
        order = store.paid_order()
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.status == FULFILLMENT_CREATED
        assert stored.fulfillment.awb == "AWB0001"
        assert stored.fulfillment.attempts == 1
        assert store.carrier.shipments[0].reference == order.order_number
        assert len(store.events(SHIPMENT_CREATED_V1)) == 1

    def test_permanent_failure_needs_manual_intervention(self, store, permanent):
        store.carrier.errors = [permanent("bad pincode")]
        order = store.paid_order()
        stored = store.orders.get(order.order_number)
        assert stored.status == ORDER_CONFIRMED
        assert stored.fulfillment.status == FULFILLMENT_MANUAL
        assert "bad pincode" in stored.fulfillment.last_error
        assert len(store.events(SHIPMENT_MANUAL_INTERVENTION_V1)) == 1

    def test_exhausted_retries_wait_for_sweep(self, store, transient):
        store.carrier.errors = [transient(), transient(), transient()]
        order = store.paid_order()
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.status == FULFILLMENT_RETRY_PENDING
        assert stored.payment.status == "paid"
        assert len(store.events(SHIPMENT_RETRY_PENDING_V1)) == 1

        assert retry_pending_shipments(store.fulfillment) == [order.order_number]
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.status == FULFILLMENT_CREATED
        assert stored.fulfillment.attempts == 2

    def test_too_many_attempts_need_manual_intervention(self, store, transient):
        store.carrier.errors = [transient() for _ in range(15)]
        order = store.paid_order()
        for _ in range(4):
            store.fulfillment.retry_shipment(order.order_number)
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.status == FULFILLMENT_MANUAL
        assert stored.fulfillment.attempts == 5

    def test_retry_is_noop_once_booked(self, store):
        order = store.paid_order()
        store.fulfillment.retry_shipment(order.order_number)
        assert len(store.carrier.shipments) == 1

    def test_unpaid_order_is_not_shipped(self, store):
        placed = store.place()
        order = store.fulfillment.schedule(placed.order.order_number)
        assert order.fulfillment.awb is None
        assert store.carrier.shipments == []


# ── Booking claims ────────────────────────────────────────────

class TestBookingClaims:
    def test_concurrent_schedulers_book_one_shipment(self, store, permanent):
        store.carrier.errors = [permanent()]
        order = store.paid_order()
        assert store.carrier.shipments == []

        entered, release = threading.Event(), threading.Event()
        book = store.carrier.create_shipment

        def slow_booking(request):
            entered.set()
            release.wait(5)
            return book(request)

        store.carrier.create_shipment = slow_booking
        results = {}
        first = threading.Thread(
            target=lambda: results.setdefault("first", store.fulfillment.schedule(order.order_number)),
        )
        first.start()
        assert entered.wait(5)

        second = store.fulfillment.retry_shipment(order.order_number)
        assert second.fulfillment.status == FULFILLMENT_SCHEDULING
        release.set()
        first.join(5)

        assert len(store.carrier.shipments) == 1
        assert results["first"].fulfillment.status == FULFILLMENT_CREATED
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.claim_token is None
        assert len(store.events(SHIPMENT_CREATED_V1)) == 1

    def test_live_claim_blocks_sweep(self, store, permanent):
        store.carrier.errors = [permanent(), RuntimeError("worker died")]
        order = store.paid_order()
        with pytest.raises(RuntimeError):
            store.fulfillment.retry_shipment(order.order_number)
        assert store.orders.get(order.order_number).fulfillment.status == FULFILLMENT_SCHEDULING

        store.clock.advance(minutes=9)
        assert retry_pending_shipments(store.fulfillment) == []
        assert store.carrier.shipments == []

    def test_expired_claim_taken_over_by_sweep(self, store, permanent):
        store.carrier.errors = [permanent(), RuntimeError("worker died")]
        order = store.paid_order()
        with pytest.raises(RuntimeError):
            store.fulfillment.retry_shipment(order.order_number)

        store.clock.advance(minutes=11)
        assert retry_pending_shipments(store.fulfillment) == [order.order_number]
        stored = store.orders.get(order.order_number)
        assert stored.fulfillment.status == FULFILLMENT_CREATED
        assert len(store.carrier.shipments) == 1


# ── Admin status updates ──────────────────────────────────────

class TestStatusUpdates:
    def test_forward_update(self, store):
        order = store.paid_order()
        updated = admin_update(store, order.order_number, ORDER_PROCESSING)
        assert updated.status == ORDER_PROCESSING
        assert updated.timeline[-1].updated_by == "admin-1"
        assert len(store.events(ORDER_STATUS_CHANGED_V1)) == 1

    def test_same_status_is_noop(self, store):
        order = store.paid_order()
        first = admin_update(store, order.order_number, ORDER_PROCESSING)
        second = admin_update(store, order.order_number, ORDER_PROCESSING)
        assert second.version == first.version

    def test_backward_update_rejected(self, store):
        order = store.paid_order()
        admin_update(store, order.order_number, ORDER_PROCESSING)
        admin_update(store, order.order_number, ORDER_SHIPPED)
        with pytest.raises(ConflictError) as exc:
            admin_update(store, order.order_number, ORDER_PROCESSING)
        assert exc.value.code == ReasonCode.OUT_OF_ORDER_EVENT
        assert exc.value.current_state["status"] == ORDER_SHIPPED

    def test_skipping_ahead_rejected(self, store):
        order = store.paid_order()
        with pytest.raises(ConflictError) as exc:
            admin_update(store, order.order_number, ORDER_DELIVERED)
        assert exc.value.code == ReasonCode.OUT_OF_ORDER_EVENT

    def test_cancelled_order_rejected(self, store):
        placed = store.place()
        store.lifecycle.cancel_order(CancelOrderRequest(
            order_number=placed.order.order_number, customer_id="cust-1", issued_at=store.clock.now_utc(),
        ))
        with pytest.raises(ConflictError) as exc:
            admin_update(store, placed.order.order_number, ORDER_PROCESSING)
        assert exc.value.code == ReasonCode.ORDER_CANCELLED

    def test_non_fulfillment_status_refused(self, store):
        with pytest.raises(ValueError):
            UpdateOrderStatusRequest(
                order_number="NSD1", status=ORDER_CONFIRMED, issued_at=store.clock.now_utc(),
            )


# ── Carrier scans ─────────────────────────────────────────────

class TestCarrierScans:
    def test_scans_advance_lifecycle(self, store):
        order = store.paid_order()
        num = order.order_number
        assert store.scan(num, "Manifested").status == ORDER_PROCESSING
        assert store.scan(num, "In Transit").status == ORDER_SHIPPED
        assert store.scan(num, "Out for Delivery").status == ORDER_OUT_FOR_DELIVERY
        outcome = store.scan(num, "Delivered")
        assert outcome.outcome == SCAN_APPLIED
        assert outcome.status == ORDER_DELIVERED

        stored = store.orders.get(num)
        assert stored.delivered_at == store.clock.now_utc()
        assert stored.fulfillment.carrier_status == "Delivered"
        assert len(store.events(ORDER_DELIVERED_V1)) == 1

    def test_duplicate_webhook_ignored(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        version = store.orders.get(order.order_number).version
        outcome = store.scan(order.order_number, "Manifested")
        assert outcome.outcome == SCAN_DUPLICATE
        assert store.orders.get(order.order_number).version == version

    def test_same_status_scan_recorded_unchanged(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        outcome = store.scan(order.order_number, "Bagged at hub")
        assert outcome.outcome == SCAN_UNCHANGED
        stored = store.orders.get(order.order_number)
        assert stored.status == ORDER_PROCESSING
        assert stored.fulfillment.carrier_status == "Bagged at hub"

    def test_shipped_may_skip_out_for_delivery(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        store.scan(order.order_number, "In Transit")
        assert store.scan(order.order_number, "Delivered").status == ORDER_DELIVERED

    def test_missed_processing_scan_is_skipped(self, store):
        order = store.paid_order()
        outcome = store.scan(order.order_number, "In Transit")
        assert outcome.outcome == SCAN_APPLIED
        assert outcome.status == ORDER_SHIPPED

    def test_out_of_order_scan_flags_order(self, store):
        order = store.paid_order()
        before = store.orders.get(order.order_number)
        with pytest.raises(ConflictError) as exc:
            store.scan(order.order_number, "Delivered")
        assert exc.value.code == ReasonCode.OUT_OF_ORDER_EVENT
        after = store.orders.get(order.order_number)
        assert after.status == ORDER_CONFIRMED
        assert after.timeline == before.timeline
        assert after.delivered_at is None
        assert after.fulfillment.needs_attention
        assert "Delivered" in after.fulfillment.attention_reason
        events = store.events(CARRIER_ANOMALY_V1)
        assert len(events) == 1
        assert events[0].payload["rejected_status"] == ORDER_DELIVERED

    def test_flag_cleared_once_order_moves_on(self, store):
        order = store.paid_order()
        with pytest.raises(ConflictError):
            store.scan(order.order_number, "Delivered")
        moved = admin_update(store, order.order_number, ORDER_SHIPPED)
        assert not moved.fulfillment.needs_attention
        assert moved.fulfillment.attention_reason is None

    def test_return_to_origin_flagged_as_anomaly(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        outcome = store.scan(order.order_number, "RTO Initiated")
        assert outcome.outcome == SCAN_ANOMALY
        assert outcome.status == ORDER_PROCESSING
        events = store.events(CARRIER_ANOMALY_V1)
        assert len(events) == 1
        assert events[0].payload["carrier_status"] == "RTO Initiated"

    def test_bad_secret_rejected(self, store):
        order = store.paid_order()
        awb = store.orders.get(order.order_number).fulfillment.awb
        with pytest.raises(ValidationError) as exc:
            store.tracking.handle_webhook({"awb": awb, "status": "Delivered"}, "wrong")
        assert exc.value.code == ReasonCode.WEBHOOK_UNAUTHORIZED

    def test_unknown_awb(self, store):
        with pytest.raises(NotFoundError):
            store.tracking.handle_webhook({"awb": "NOPE", "status": "Delivered"}, WEBHOOK_SECRET)

    def test_missing_awb(self, store):
        with pytest.raises(ValidationError) as exc:
            store.tracking.handle_webhook({"status": "Delivered"}, WEBHOOK_SECRET)
        assert exc.value.code == ReasonCode.INVALID_REQUEST

    def test_nested_payload_shape(self, store):
        order = store.paid_order()
        awb = store.orders.get(order.order_number).fulfillment.awb
        payload = {"Shipment": {"AWB": awb, "Status": {"Status": "Manifested"}}}
        assert store.tracking.handle_webhook(payload, WEBHOOK_SECRET).status == ORDER_PROCESSING


# ── Reconciliation poll ───────────────────────────────────────

class TestReconciliation:
    def test_never_synced_order_is_polled(self, store):
        order = store.paid_order()
        store.carrier.tracking["AWB0001"] = "Manifested"
        assert reconcile_shipments(store.tracking) == [order.order_number]
        assert store.orders.get(order.order_number).status == ORDER_PROCESSING

    def test_recent_scan_not_polled(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        store.clock.advance(minutes=29)
        assert store.tracking.reconcile() == []

    def test_stale_order_polled(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        store.scan(order.order_number, "In Transit")
        store.clock.advance(minutes=31)
        store.carrier.tracking["AWB0001"] = "Delivered"
        outcomes = store.tracking.reconcile()
        assert [o.status for o in outcomes] == [ORDER_DELIVERED]

    def test_delivered_orders_not_polled(self, store):
        store.delivered_order()
        store.clock.advance(hours=2)
        assert store.tracking.reconcile() == []

    def test_conflicting_poll_flags_order_once(self, store):
        order = store.paid_order()
        store.carrier.tracking["AWB0001"] = "Delivered"
        assert store.tracking.reconcile() == []
        stored = store.orders.get(order.order_number)
        assert stored.status == ORDER_CONFIRMED
        assert stored.fulfillment.needs_attention

        store.clock.advance(minutes=31)
        assert store.tracking.reconcile() == []
        assert len(store.events(CARRIER_ANOMALY_V1)) == 1

    def test_poll_and_push_agree(self, store):
        order = store.paid_order()
        store.carrier.tracking["AWB0001"] = "Manifested"
        store.tracking.reconcile()
        store.clock.advance(minutes=1)
        assert store.scan(order.order_number, "Manifested").outcome == SCAN_UNCHANGED


# ── Delivery confirmation ─────────────────────────────────────

class TestDeliveryConfirmation:
    def test_bonus_awarded_once(self, store):
        order = store.delivered_order()
        confirmed = confirm_delivery(store, order.order_number)
        assert confirmed.delivery_bonus_awarded
        assert confirmed.delivery_bonus_points == 21
        again = confirm_delivery(store, order.order_number)
        assert again.version == confirmed.version
        assert store.loyalty.account("cust-1").balance == 42

    def test_confirming_shipped_order_delivers_it(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        store.scan(order.order_number, "In Transit")
        confirmed = confirm_delivery(store, order.order_number)
        assert confirmed.status == ORDER_DELIVERED
        assert confirmed.delivered_at is not None
        assert confirmed.timeline[-1].updated_by == "cust-1"
        assert len(store.events(ORDER_DELIVERED_V1)) == 1

    def test_carrier_delivery_after_confirmation_is_unchanged(self, store):
        order = store.paid_order()
        store.scan(order.order_number, "Manifested")
        store.scan(order.order_number, "In Transit")
        confirm_delivery(store, order.order_number)
        assert store.scan(order.order_number, "Delivered").outcome == SCAN_UNCHANGED

    def test_not_yet_shipped(self, store):
        order = store.paid_order()
        with pytest.raises(ConflictError) as exc:
            confirm_delivery(store, order.order_number)
        assert exc.value.code == ReasonCode.INVALID_TRANSITION

    def test_other_customer_cannot_confirm(self, store):
        order = store.delivered_order()
        with pytest.raises(NotFoundError):
            confirm_delivery(store, order.order_number, customer_id="cust-2")

    def test_cancelled_order_cannot_be_confirmed(self, store):
        placed = store.place()
        store.lifecycle.cancel_order(CancelOrderRequest(
            order_number=placed.order.order_number, customer_id="cust-1", issued_at=store.clock.now_utc(),
        ))
        assert store.orders.get(placed.order.order_number).status == ORDER_CANCELLED
        with pytest.raises(ConflictError):
            confirm_delivery(store, placed.order.order_number)


def test_sync_window_is_thirty_minutes(store):
    order = store.paid_order()
    store.scan(order.order_number, "Manifested")
    stored = store.orders.get(order.order_number)
    now = store.clock.now_utc()
    assert not store.tracking.needs_sync(stored, now + timedelta(minutes=29, seconds=59))
    assert store.tracking.needs_sync(stored, now + timedelta(minutes=30))
