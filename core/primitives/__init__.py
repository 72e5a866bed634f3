"""
Evolv Core Primitives
=====================
Engine-agnostic building blocks:

    workflow — immutable state machine definitions
    money    — Decimal rounding and minor-unit conversion
"""

from core.primitives.money import (
    TWO_PLACES,
    ZERO,
    floor_int,
    from_minor_units,
    money_str,
    round_money,
    to_decimal,
    to_minor_units,
)
from core.primitives.workflow import WorkflowDefinition

__all__ = [
    "TWO_PLACES",
    "ZERO",
    "WorkflowDefinition",
    "floor_int",
    "from_minor_units",
    "money_str",
    "round_money",
    "to_decimal",
    "to_minor_units",
]
