"""Evolv Orders Engine tests: refund initiation, gateway polling and retry cool-down."""

from decimal import Decimal

import pytest

from core.commands.rejection import ReasonCode
from core.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from engines.orders import CancelOrderRequest
from engines.orders.events import REFUND_COMPLETED_V1, REFUND_FAILED_V1, REFUND_INITIATED_V1
from engines.orders.model import (
    ORDER_CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    REFUND_COMPLETED,
    REFUND_FAILED,
    REFUND_PROCESSING,
)
from engines.orders.refunds import default_refund_amount, refundable_payment_id


class TestRefundAmount:
    def test_defaults_to_order_total(self, store):
        order = store.paid_order()
        refunded = store.refunds.refund_order(order.order_number)
        assert refunded.payment.refund.amount == Decimal("1099.00")
        assert store.gateway.refund_calls[0][0] == f"pay_{order.order_number}"

    def test_shipping_can_be_deducted(self, store):
        order = store.paid_order()
        assert default_refund_amount(order, deduct_shipping=True) == Decimal("999.00")
        refunded = store.refunds.refund_order(order.order_number, deduct_shipping=True)
        assert refunded.payment.refund.amount == Decimal("999.00")

    def test_partial_amount(self, store):
        order = store.paid_order()
        refunded = store.refunds.refund_order(order.order_number, amount="250.50", reason="Damaged")
        assert refunded.payment.refund.amount == Decimal("250.50")
        assert refunded.payment.refund.reason == "Damaged"

    @pytest.mark.parametrize("amount", ["0", "-10", "1099.01"])
    def test_out_of_range_amount(self, store, amount):
        order = store.paid_order()
        with pytest.raises(ValidationError) as exc:
            store.refunds.refund_order(order.order_number, amount=amount)
        assert exc.value.code == ReasonCode.REFUND_INVALID_AMOUNT
        assert store.gateway.refund_calls == []


class TestRefundLifecycle:
    def test_processed_refund_completes(self, store):
        order = store.paid_order()
        refunded = store.refunds.refund_order(order.order_number)
        assert refunded.payment.refund.status == REFUND_COMPLETED
        assert refunded.payment.refund.completed_at == store.clock.now_utc()
        assert refunded.payment.status == PAYMENT_REFUNDED
        assert len(store.events(REFUND_INITIATED_V1)) == 1
        assert len(store.events(REFUND_COMPLETED_V1)) == 1

    def test_completed_refund_is_not_repeated(self, store):
        order = store.paid_order()
        first = store.refunds.refund_order(order.order_number)
        second = store.refunds.refund_order(order.order_number)
        assert second.version == first.version
        assert len(store.gateway.refund_calls) == 1

    def test_pending_refund_polled_until_processed(self, store):
        order = store.paid_order()
        store.gateway.refund_status = "pending"
        pending = store.refunds.refund_order(order.order_number)
        assert pending.payment.refund.status == REFUND_PROCESSING
        assert pending.payment.refund.refund_id == "rfnd_1"
        assert pending.payment.status == "paid"

        assert store.refunds.refresh(order.order_number).payment.refund.status == REFUND_PROCESSING

        store.gateway.refund_status = "processed"
        done = store.refunds.refund_order(order.order_number)
        assert done.payment.refund.status == REFUND_COMPLETED
        assert len(store.gateway.refund_calls) == 1

    def test_gateway_failure_recorded(self, store, permanent):
        order = store.paid_order()
        store.gateway.refund_errors = [permanent("insufficient balance")]
        with pytest.raises(ExternalServiceError):
            store.refunds.refund_order(order.order_number)
        stored = store.orders.get(order.order_number)
        assert stored.payment.refund.status == REFUND_FAILED
        assert "insufficient balance" in stored.payment.refund.error_message
        assert stored.payment.status == "paid"
        assert len(store.events(REFUND_FAILED_V1)) == 1

    def test_transient_failure_not_retried(self, store, transient):
        order = store.paid_order()
        store.gateway.refund_errors = [transient()]
        with pytest.raises(ExternalServiceError):
            store.refunds.refund_order(order.order_number)
        assert len(store.gateway.refund_calls) == 1

    def test_retry_after_failure_waits_for_cooldown(self, store, permanent):
        order = store.paid_order()
        store.gateway.refund_errors = [permanent()]
        with pytest.raises(ExternalServiceError):
            store.refunds.refund_order(order.order_number)

        store.clock.advance(minutes=59)
        with pytest.raises(ConflictError) as exc:
            store.refunds.refund_order(order.order_number)
        assert exc.value.code == ReasonCode.REFUND_RETRY_TOO_SOON

        store.clock.advance(minutes=1)
        retried = store.refunds.refund_order(order.order_number)
        assert retried.payment.refund.status == REFUND_COMPLETED
        assert retried.payment.refund.attempts == 2


class TestRefundEligibility:
    def test_unpaid_order_has_nothing_to_refund(self, store):
        placed = store.place()
        with pytest.raises(ConflictError) as exc:
            store.refunds.refund_order(placed.order.order_number)
        assert exc.value.code == ReasonCode.REFUND_NOT_ALLOWED

    def test_unknown_order(self, store):
        with pytest.raises(NotFoundError):
            store.refunds.refund_order("NSD000000000000")

    def test_late_payment_on_cancelled_order_is_refundable(self, store):
        placed = store.place()
        number = placed.order.order_number
        store.lifecycle.cancel_order(CancelOrderRequest(
            order_number=number, customer_id="cust-1", issued_at=store.clock.now_utc(),
        ))
        with pytest.raises(ConflictError):
            store.pay(number, payment_id="pay_late")

        flagged = store.orders.get(number)
        assert flagged.reconciliation_required
        assert refundable_payment_id(flagged) == "pay_late"

        refunded = store.refunds.refund_order(number, reason="Late payment")
        assert refunded.status == ORDER_CANCELLED
        assert refunded.payment.status == PAYMENT_PENDING
        assert refunded.payment.refund.status == REFUND_COMPLETED
        assert store.gateway.refund_calls[0][0] == "pay_late"
