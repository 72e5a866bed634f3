"""
Evolv Pricing Engine
====================
Pure price breakdown: tax-exclusive base, GST split by jurisdiction,
flat shipping with a free-shipping threshold, discount on the total.
"""

from engines.pricing.calculator import (
    PriceBreakdown,
    TaxBreakdown,
    compute_breakdown,
    is_home_state,
    normalize_state,
    shipping_cost_for,
    verify_client_total,
)
from engines.pricing.cart import Cart, CartLineItem
from engines.pricing.constants import (
    CURRENCY,
    FREE_SHIPPING_THRESHOLD,
    GST_RATE,
    SHIPPING_FLAT_FEE,
)

__all__ = [
    "CURRENCY",
    "Cart",
    "CartLineItem",
    "FREE_SHIPPING_THRESHOLD",
    "GST_RATE",
    "PriceBreakdown",
    "SHIPPING_FLAT_FEE",
    "TaxBreakdown",
    "compute_breakdown",
    "is_home_state",
    "normalize_state",
    "shipping_cost_for",
    "verify_client_total",
]
