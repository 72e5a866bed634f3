"""
Evolv Workflow Primitive — Generic State Machine
=================================================
Deterministic state machine schema shared by every lifecycle the
order engine tracks:

    Order status        pending → confirmed → processing → shipped
                        → out_for_delivery → delivered | cancelled
    Payment status      pending → paid | failed
    Refund status       initiated → processing → completed | failed
    Exchange status     pending → approved | rejected

RULES:
- Invalid transitions are rejected — no silent state skips
- Terminal states accept no further transitions
- Definitions are immutable (frozen)

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Valid states and transitions for one lifecycle.

    Fields:
        name:            Identifier (e.g. "Order").
        initial_state:   Starting state for new instances.
        terminal_states: States from which no transition is allowed.
        transitions:     {from_state → frozenset(allowed_to_states)}.
        progression:     Optional ordered main line. When set, `rank()`
                         reports a state's position so callers can tell
                         a regression from a skip.
    """

    name: str
    initial_state: str
    terminal_states: FrozenSet[str]
    transitions: Dict[str, FrozenSet[str]]
    progression: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Workflow name must be non-empty.")
        if self.initial_state not in self.transitions:
            raise ValueError(
                f"initial_state '{self.initial_state}' not in transitions."
            )
        for state in self.progression:
            if state not in self.transitions:
                raise ValueError(f"progression state '{state}' not in transitions.")

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.transitions)

    def is_valid_transition(self, from_state: str, to_state: str) -> bool:
        if from_state in self.terminal_states:
            return False
        return to_state in self.transitions.get(from_state, frozenset())

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def allowed_next_states(self, from_state: str) -> FrozenSet[str]:
        return self.transitions.get(from_state, frozenset())

    def rank(self, state: str) -> Optional[int]:
        """Position of `state` on the main line, or None if off it."""
        try:
            return self.progression.index(state)
        except ValueError:
            return None

    def is_regression(self, from_state: str, to_state: str) -> bool:
        """True when `to_state` sits at or before `from_state` on the main line."""
        a, b = self.rank(from_state), self.rank(to_state)
        if a is None or b is None:
            return False
        return b < a
