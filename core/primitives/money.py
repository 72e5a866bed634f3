"""
Evolv Money Primitive
=====================
All amounts are Decimal rupees. Rounding happens once, on aggregates,
half-up to two places.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """Coerce int/str/Decimal into Decimal. Floats are refused."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Money values must be Decimal, int or str, got {type(value).__name__}."
        )
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def floor_int(value: Decimal) -> int:
    """Floor a non-negative Decimal to an int."""
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def to_minor_units(value: Decimal) -> int:
    """Rupees → paise, as payment gateways expect."""
    return int(round_money(value) * 100)


def from_minor_units(value: int) -> Decimal:
    return round_money(Decimal(value) / 100)


def money_str(value: Decimal) -> str:
    return format(round_money(value), "f")
