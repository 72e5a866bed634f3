"""
Evolv Command Layer — Command Base Contract
============================================
Every state change in the order engine begins as a Command.

A Command is a frozen, auditable declaration of intent from a
customer, an admin, an external system (gateway / carrier webhook)
or the scheduler. It carries identity, actor and payload — nothing else.

Rules:
- Immutable once created (frozen dataclass)
- No business logic inside
- command_type must end with '.request'
- command_type follows engine.domain.action.request format
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime


# ══════════════════════════════════════════════════════════════
# ACTOR TYPES
# ══════════════════════════════════════════════════════════════

ACTOR_CUSTOMER = "CUSTOMER"
ACTOR_ADMIN = "ADMIN"
ACTOR_SYSTEM = "SYSTEM"
ACTOR_GATEWAY = "GATEWAY"
ACTOR_CARRIER = "CARRIER"

VALID_ACTOR_TYPES = frozenset({
    ACTOR_CUSTOMER, ACTOR_ADMIN, ACTOR_SYSTEM, ACTOR_GATEWAY, ACTOR_CARRIER,
})


# ══════════════════════════════════════════════════════════════
# CANONICAL COMMAND
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Command:
    """
    Canonical Command — declaration of intent.

    Fields:
        command_id:     Unique identifier (UUID).
        command_type:   Namespaced type ending in '.request'
                        (e.g. 'orders.payment.confirm.request').
        actor_type:     CUSTOMER | ADMIN | SYSTEM | GATEWAY | CARRIER.
        actor_id:       Identity of the actor.
        payload:        Intent data (dict).
        issued_at:      When the command was issued.
        correlation_id: Groups related commands (e.g. one checkout).
        source_engine:  Engine that owns this command.
    """

    command_id: uuid.UUID
    command_type: str
    actor_type: str
    actor_id: str
    payload: dict
    issued_at: datetime
    correlation_id: uuid.UUID
    source_engine: str

    def __post_init__(self):
        if not isinstance(self.command_id, uuid.UUID):
            raise ValueError(
                f"command_id must be UUID, got {type(self.command_id).__name__}"
            )

        if not self.command_type or not isinstance(self.command_type, str):
            raise ValueError("command_type must be a non-empty string.")

        if not self.command_type.endswith(".request"):
            raise ValueError(
                f"command_type '{self.command_type}' must end with '.request'."
            )

        parts = self.command_type.split(".")
        if len(parts) < 4:
            raise ValueError(
                f"command_type '{self.command_type}' must follow "
                f"engine.domain.action.request format (minimum 4 segments)."
            )

        if parts[0] != self.source_engine:
            raise ValueError(
                f"command_type namespace '{parts[0]}' does not match "
                f"source_engine '{self.source_engine}'."
            )

        if self.actor_type not in VALID_ACTOR_TYPES:
            raise ValueError(
                f"actor_type '{self.actor_type}' not valid. "
                f"Must be one of: {sorted(VALID_ACTOR_TYPES)}"
            )

        if not self.actor_id or not isinstance(self.actor_id, str):
            raise ValueError("actor_id must be a non-empty string.")

        if not isinstance(self.payload, dict):
            raise TypeError("payload must be a dict.")

        if not isinstance(self.correlation_id, uuid.UUID):
            raise ValueError("correlation_id must be UUID.")

        if self.issued_at.tzinfo is None:
            raise ValueError("issued_at must be timezone-aware.")


def derive_source_engine(command_type: str) -> str:
    """
    Extract source engine from command type.

    orders.payment.confirm.request → orders
    """
    return command_type.split(".")[0]
