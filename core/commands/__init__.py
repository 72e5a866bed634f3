"""
Evolv Command Layer
===================
Every state change begins as a Command.
Policies judge it; services apply it; rejections are structured.
"""

from core.commands.base import (
    ACTOR_ADMIN,
    ACTOR_CARRIER,
    ACTOR_CUSTOMER,
    ACTOR_GATEWAY,
    ACTOR_SYSTEM,
    Command,
    VALID_ACTOR_TYPES,
    derive_source_engine,
)
from core.commands.dispatcher import PolicyEvaluator, evaluate_policies
from core.commands.rejection import ReasonCode, RejectionReason

__all__ = [
    # ── Base ──────────────────────────────────────────────────
    "Command",
    "VALID_ACTOR_TYPES",
    "ACTOR_ADMIN",
    "ACTOR_CARRIER",
    "ACTOR_CUSTOMER",
    "ACTOR_GATEWAY",
    "ACTOR_SYSTEM",
    "derive_source_engine",
    # ── Policies ──────────────────────────────────────────────
    "PolicyEvaluator",
    "evaluate_policies",
    # ── Rejection ─────────────────────────────────────────────
    "RejectionReason",
    "ReasonCode",
]
