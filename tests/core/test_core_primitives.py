"""
Tests for core.primitives — money rounding and workflow definitions.
"""

from decimal import Decimal

import pytest

from core.primitives import (
    WorkflowDefinition,
    floor_int,
    from_minor_units,
    money_str,
    round_money,
    to_decimal,
    to_minor_units,
)
from engines.orders.model import ORDER_WORKFLOW, PAYMENT_WORKFLOW, REFUND_WORKFLOW


# ── Money ────────────────────────────────────────────────────

class TestMoney:
    def test_half_up(self):
        assert round_money(Decimal("71.425")) == Decimal("71.43")
        assert round_money(Decimal("71.424")) == Decimal("71.42")

    def test_floats_refused(self):
        with pytest.raises(TypeError):
            to_decimal(10.5)
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_strings_and_ints(self):
        assert to_decimal("999.00") == Decimal("999.00")
        assert to_decimal(5) == Decimal("5")

    def test_minor_units(self):
        assert to_minor_units(Decimal("1099.00")) == 109900
        assert to_minor_units(Decimal("0.005")) == 1
        assert from_minor_units(309999) == Decimal("3099.99")

    def test_floor_and_format(self):
        assert floor_int(Decimal("61.9998")) == 61
        assert money_str(Decimal("100")) == "100.00"


# ── Workflows ────────────────────────────────────────────────

class TestWorkflows:
    @pytest.mark.parametrize("a,b", [
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "processing"),
        ("confirmed", "shipped"),
        ("processing", "shipped"),
        ("shipped", "out_for_delivery"),
        ("shipped", "delivered"),
        ("out_for_delivery", "delivered"),
    ])
    def test_order_forward_edges(self, a, b):
        assert ORDER_WORKFLOW.is_valid_transition(a, b)

    @pytest.mark.parametrize("a,b", [
        ("confirmed", "cancelled"),
        ("shipped", "processing"),
        ("confirmed", "delivered"),
        ("processing", "delivered"),
        ("delivered", "shipped"),
        ("cancelled", "confirmed"),
    ])
    def test_order_rejected_edges(self, a, b):
        assert not ORDER_WORKFLOW.is_valid_transition(a, b)

    def test_terminal_order_states(self):
        assert ORDER_WORKFLOW.is_terminal("delivered")
        assert ORDER_WORKFLOW.is_terminal("cancelled")

    def test_payment_edges(self):
        assert PAYMENT_WORKFLOW.is_valid_transition("failed", "paid")
        assert PAYMENT_WORKFLOW.is_valid_transition("paid", "refunded")
        assert not PAYMENT_WORKFLOW.is_valid_transition("paid", "pending")

    def test_refund_retry_edge(self):
        assert REFUND_WORKFLOW.is_valid_transition("failed", "initiated")
        assert not REFUND_WORKFLOW.is_valid_transition("completed", "initiated")

    def test_regression_detection(self):
        assert ORDER_WORKFLOW.is_regression("shipped", "processing")
        assert not ORDER_WORKFLOW.is_regression("shipped", "delivered")

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError):
            WorkflowDefinition("Broken", "start", frozenset(), {"other": frozenset()})
