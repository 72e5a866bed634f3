"""
Evolv Pricing Engine — Business Constants
==========================================
Fixed business rules shared by the checkout preview and the order
submission path. Both import from here; neither redefines a value.
"""

from __future__ import annotations

from decimal import Decimal

# GST is a single fixed 5% rate, embedded in displayed prices.
GST_RATE = Decimal("0.05")
GST_DIVISOR = Decimal("1") + GST_RATE
HALF_GST_RATE = GST_RATE / 2

# Seller's registered state. Intra-state shipments split CGST/SGST.
HOME_STATE = "gujarat"
HOME_STATE_SPELLINGS = frozenset({"gujarat", "gujrat"})

# Flat shipping fee, waived at or above the tax-inclusive threshold.
SHIPPING_FLAT_FEE = Decimal("100.00")
FREE_SHIPPING_THRESHOLD = Decimal("3000.00")

CURRENCY = "INR"
