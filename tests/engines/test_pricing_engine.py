"""Evolv Pricing Engine tests: GST split, shipping threshold, discounts and client totals."""

from decimal import Decimal

import pytest

from core.commands.rejection import ReasonCode
from core.errors import ValidationError
from engines.pricing import (
    Cart,
    CartLineItem,
    compute_breakdown,
    is_home_state,
    shipping_cost_for,
    verify_client_total,
)


def item(price, quantity=1, product_id="P-1", size="M", color="Red"):
    return CartLineItem(product_id, size, color, Decimal(price), quantity)


# ── Tax and shipping ──────────────────────────────────────────

class TestBreakdown:
    def test_home_state_splits_gst_evenly(self):
        b = compute_breakdown([item("2999.99")], "Gujarat")
        assert b.base_amount == Decimal("2857.13")
        assert b.tax_amount == Decimal("142.86")
        assert b.tax_breakdown.cgst == Decimal("71.43")
        assert b.tax_breakdown.sgst == Decimal("71.43")
        assert b.tax_breakdown.igst == Decimal("0")
        assert b.shipping_cost == Decimal("100.00")
        assert b.total == Decimal("3099.99")

    def test_odd_paisa_tax_split_adds_up(self):
        b = compute_breakdown([item("999.00")], "Gujarat")
        assert b.tax_amount == Decimal("47.57")
        assert b.tax_breakdown.cgst == Decimal("23.79")
        assert b.tax_breakdown.sgst == Decimal("23.78")
        assert b.tax_breakdown.cgst + b.tax_breakdown.sgst == b.tax_amount

    def test_other_state_charges_igst(self):
        b = compute_breakdown([item("2999.99")], "Maharashtra")
        assert b.tax_breakdown.igst == Decimal("142.86")
        assert b.tax_breakdown.cgst == Decimal("0")
        assert b.to_dict()["tax_breakdown"] == {"igst": "142.86"}

    @pytest.mark.parametrize("state", ["gujarat", " GUJARAT ", "Gujrat"])
    def test_home_state_spellings(self, state):
        assert is_home_state(state)
        assert compute_breakdown([item("500")], state).tax_breakdown.is_intra_state

    def test_free_shipping_at_threshold(self):
        b = compute_breakdown([item("3000.00")], "Gujarat")
        assert b.shipping_cost == Decimal("0")
        assert b.total == Decimal("3000.00")

    def test_threshold_uses_tax_inclusive_subtotal(self):
        assert shipping_cost_for(Decimal("2999.99")) == Decimal("100.00")
        assert shipping_cost_for(Decimal("3000.00")) == Decimal("0")

    def test_quantity_multiplies_base(self):
        b = compute_breakdown([item("999.00", quantity=2)], "Kerala")
        assert b.subtotal_inclusive == Decimal("1998.00")
        assert b.base_amount == Decimal("1902.86")
        assert b.tax_amount == Decimal("95.14")
        assert b.total == Decimal("2098.00")

    def test_discount_subtracted_from_total(self):
        b = compute_breakdown([item("999.00")], "Gujarat", Decimal("100"))
        assert b.discount_amount == Decimal("100.00")
        assert b.total == Decimal("999.00")

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError):
            compute_breakdown([item("999.00")], "Gujarat", Decimal("-1"))

    def test_empty_cart_costs_nothing(self):
        b = compute_breakdown([], "Gujarat")
        assert b.shipping_cost == Decimal("0")
        assert b.total == Decimal("0")

    def test_to_dict_serializes_strings(self):
        d = compute_breakdown([item("2999.99")], "Gujarat").to_dict()
        assert d["total"] == "3099.99"
        assert d["tax_breakdown"] == {"cgst": "71.43", "sgst": "71.43"}


# ── Client total ──────────────────────────────────────────────

class TestClientTotal:
    def test_matching_total_accepted(self):
        b = compute_breakdown([item("2999.99")], "Gujarat")
        verify_client_total(b, "3099.99")
        verify_client_total(b, None)

    def test_mismatch_rejected(self):
        b = compute_breakdown([item("2999.99")], "Gujarat")
        with pytest.raises(ValidationError) as exc:
            verify_client_total(b, "3000.00")
        assert exc.value.code == ReasonCode.PRICE_MISMATCH

    def test_garbage_total_rejected(self):
        b = compute_breakdown([item("2999.99")], "Gujarat")
        with pytest.raises(ValidationError) as exc:
            verify_client_total(b, "abc")
        assert exc.value.code == ReasonCode.INVALID_REQUEST


# ── Cart ──────────────────────────────────────────────────────

class TestCart:
    def test_same_line_merges_quantity(self):
        cart = Cart("cust-1").add(item("100", 1)).add(item("100", 2))
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3
        assert cart.subtotal == Decimal("300")

    def test_size_and_color_separate_lines(self):
        cart = Cart("cust-1").add(item("100", size="M")).add(item("100", size="L"))
        assert len(cart.items) == 2

    def test_remove_and_clear(self):
        cart = Cart("cust-1").add(item("100")).add(item("50", product_id="P-2"))
        cart = cart.remove("P-1", "M", "Red")
        assert [i.product_id for i in cart.items] == ["P-2"]
        assert cart.clear().is_empty

    def test_invalid_quantity_rejected(self):
        with pytest.raises(ValueError):
            item("100", quantity=0)
