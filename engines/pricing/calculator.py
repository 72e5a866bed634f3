"""
Evolv Pricing Engine — Price Breakdown Calculator
==================================================
One authoritative, pure pricing function. The storefront preview and
the order submission path both call compute_breakdown(); the server
always recomputes and rejects a client total that does not match.

Per line:
    base = unit_price / 1.05 * qty        (tax-exclusive)
    tax  = base * 0.05
Sums are rounded ONCE, half-up to 2 places, on the aggregate.

    CGST = tax / 2, SGST = tax - CGST    when shipping to the home state
    IGST = tax                           otherwise

    shipping = 0 if tax-inclusive subtotal >= threshold else flat fee
    total    = base + tax + shipping - discount

Discounts never reduce the tax base.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from core.commands.rejection import ReasonCode
from core.errors import ValidationError
from core.primitives.money import ZERO, money_str, round_money, to_decimal
from engines.pricing.cart import CartLineItem
from engines.pricing.constants import (
    FREE_SHIPPING_THRESHOLD,
    GST_DIVISOR,
    GST_RATE,
    HOME_STATE_SPELLINGS,
    SHIPPING_FLAT_FEE,
)

logger = logging.getLogger("evolv.pricing")


# ══════════════════════════════════════════════════════════════
# VALUE TYPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TaxBreakdown:
    """Either intra-state (cgst + sgst) or inter-state (igst)."""

    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO

    @property
    def is_intra_state(self) -> bool:
        return self.igst == ZERO and (self.cgst > ZERO or self.sgst > ZERO)

    def to_dict(self) -> dict:
        if self.igst > ZERO or not self.is_intra_state:
            return {"igst": money_str(self.igst)}
        return {"cgst": money_str(self.cgst), "sgst": money_str(self.sgst)}


@dataclass(frozen=True)
class PriceBreakdown:
    base_amount: Decimal
    tax_amount: Decimal
    tax_breakdown: TaxBreakdown
    shipping_cost: Decimal
    discount_amount: Decimal
    total: Decimal
    subtotal_inclusive: Decimal

    def to_dict(self) -> dict:
        return {
            "base_amount": money_str(self.base_amount),
            "tax_amount": money_str(self.tax_amount),
            "tax_breakdown": self.tax_breakdown.to_dict(),
            "shipping_cost": money_str(self.shipping_cost),
            "discount_amount": money_str(self.discount_amount),
            "total": money_str(self.total),
            "subtotal_inclusive": money_str(self.subtotal_inclusive),
        }


# ══════════════════════════════════════════════════════════════
# RULES
# ══════════════════════════════════════════════════════════════

def normalize_state(state: Optional[str]) -> str:
    return " ".join(str(state or "").split()).lower()


def is_home_state(state: Optional[str]) -> bool:
    return normalize_state(state) in HOME_STATE_SPELLINGS


def shipping_cost_for(subtotal_inclusive: Decimal) -> Decimal:
    if subtotal_inclusive >= FREE_SHIPPING_THRESHOLD:
        return ZERO
    return SHIPPING_FLAT_FEE


def _discount_amount(discount: Any) -> Decimal:
    if discount is None:
        return ZERO
    if isinstance(discount, (Decimal, int, str)):
        return to_decimal(discount)
    return to_decimal(getattr(discount, "discount_amount", ZERO))


# ══════════════════════════════════════════════════════════════
# CALCULATOR
# ══════════════════════════════════════════════════════════════

def compute_breakdown(
    line_items: Iterable[CartLineItem],
    shipping_state: Optional[str],
    discount: Any = None,
) -> PriceBreakdown:
    """
    Pure price breakdown for a cart.

    `discount` may be None, an amount, or any object exposing
    `discount_amount` (a DiscountSelection).
    """
    items = tuple(line_items)

    raw_base = ZERO
    subtotal_inclusive = ZERO
    for item in items:
        raw_base += item.unit_price / GST_DIVISOR * item.quantity
        subtotal_inclusive += item.line_total

    base_amount = round_money(raw_base)
    tax_amount = round_money(raw_base * GST_RATE)

    if is_home_state(shipping_state):
        half = round_money(tax_amount / 2)
        tax_breakdown = TaxBreakdown(cgst=half, sgst=tax_amount - half)
    else:
        tax_breakdown = TaxBreakdown(igst=tax_amount)

    shipping_cost = shipping_cost_for(subtotal_inclusive) if items else ZERO

    discount_amount = round_money(_discount_amount(discount))
    if discount_amount < ZERO:
        raise ValidationError.build(
            ReasonCode.INVALID_REQUEST,
            "Discount amount cannot be negative.",
            "compute_breakdown",
        )

    total = round_money(base_amount + tax_amount + shipping_cost - discount_amount)
    if total < ZERO:
        total = ZERO

    return PriceBreakdown(
        base_amount=base_amount,
        tax_amount=tax_amount,
        tax_breakdown=tax_breakdown,
        shipping_cost=shipping_cost,
        discount_amount=discount_amount,
        total=total,
        subtotal_inclusive=round_money(subtotal_inclusive),
    )


def verify_client_total(breakdown: PriceBreakdown, client_total: Any) -> None:
    """
    Reject a client-submitted total that differs from the server's.

    The client figure is never trusted; it is only compared.
    """
    if client_total is None:
        return
    try:
        submitted = round_money(to_decimal(str(client_total)))
    except Exception as exc:
        raise ValidationError.build(
            ReasonCode.INVALID_REQUEST,
            f"Client total '{client_total}' is not a valid amount.",
            "verify_client_total",
        ) from exc

    if submitted != breakdown.total:
        logger.warning(
            "Client total %s does not match server total %s",
            submitted, breakdown.total,
        )
        raise ValidationError.build(
            ReasonCode.PRICE_MISMATCH,
            (
                f"Submitted total {money_str(submitted)} does not match "
                f"computed total {money_str(breakdown.total)}."
            ),
            "verify_client_total",
        )
