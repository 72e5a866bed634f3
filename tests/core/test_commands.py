"""
Tests for core.commands and core.errors — command contract, policy
evaluation and reason-to-error mapping.
"""

import uuid
from datetime import datetime, timezone

import pytest

from core.commands import ACTOR_CUSTOMER, Command, derive_source_engine, evaluate_policies
from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
    error_for,
)

ISSUED_AT = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def make_command(**overrides):
    values = dict(
        command_id=uuid.uuid4(),
        command_type="orders.order.cancel.request",
        actor_type=ACTOR_CUSTOMER,
        actor_id="cust-1",
        payload={"order_number": "NSD260302000001"},
        issued_at=ISSUED_AT,
        correlation_id=uuid.uuid4(),
        source_engine="orders",
    )
    values.update(overrides)
    return Command(**values)


def reason(code, policy="test_policy"):
    return RejectionReason(code=code, message=f"{code} happened", policy_name=policy)


# ── Command Contract ─────────────────────────────────────────

class TestCommandContract:
    def test_valid_command(self):
        command = make_command()
        assert command.source_engine == derive_source_engine(command.command_type)

    @pytest.mark.parametrize("command_type", [
        "orders.order.cancel",
        "orders.cancel.request",
        "exchange.order.cancel.request",
    ])
    def test_bad_command_type(self, command_type):
        with pytest.raises(ValueError):
            make_command(command_type=command_type)

    def test_unknown_actor_type(self):
        with pytest.raises(ValueError):
            make_command(actor_type="ROBOT")

    def test_naive_issued_at(self):
        with pytest.raises(ValueError):
            make_command(issued_at=datetime(2026, 3, 2))


# ── Policy Evaluation ────────────────────────────────────────

class TestEvaluatePolicies:
    def test_all_pass(self):
        assert evaluate_policies(make_command(), {}, [lambda c, s: None, lambda c, s: None]) is None

    def test_first_rejection_wins(self):
        seen = []

        def first(command, state):
            seen.append("first")
            return reason(ReasonCode.ORDER_NOT_FOUND, "first")

        def second(command, state):
            seen.append("second")
            return reason(ReasonCode.ORDER_CANCELLED, "second")

        result = evaluate_policies(make_command(), {}, [first, second])
        assert result.policy_name == "first"
        assert seen == ["first"]


# ── Reason → Error ───────────────────────────────────────────

class TestErrorFor:
    @pytest.mark.parametrize("code,error_class", [
        (ReasonCode.ORDER_NOT_FOUND, NotFoundError),
        (ReasonCode.EXCHANGE_NOT_FOUND, NotFoundError),
        (ReasonCode.PAYMENT_WINDOW_EXPIRED, ExpiredError),
        (ReasonCode.EXCHANGE_WINDOW_EXPIRED, ExpiredError),
        (ReasonCode.OUT_OF_ORDER_EVENT, ConflictError),
        (ReasonCode.ORDER_NOT_PENDING, ConflictError),
        (ReasonCode.EXCHANGE_ALREADY_OPEN, ConflictError),
        (ReasonCode.REFUND_RETRY_TOO_SOON, ConflictError),
        (ReasonCode.PRICE_MISMATCH, ValidationError),
        (ReasonCode.INVALID_CODE, ValidationError),
    ])
    def test_mapping(self, code, error_class):
        error = error_for(reason(code))
        assert type(error) is error_class
        assert error.code == code

    def test_conflict_carries_state(self):
        error = error_for(reason(ReasonCode.ORDER_CANCELLED), {"status": "cancelled"})
        assert error.current_state == {"status": "cancelled"}
        assert str(error) == f"{ReasonCode.ORDER_CANCELLED} happened"
