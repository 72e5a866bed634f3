"""
Evolv Command Layer — Policy Evaluation
========================================
Runs an ordered list of policies against a command and the state
snapshot it targets. The first policy that rejects wins.

A policy is a callable:
    (Command, state) → Optional[RejectionReason]
Returns None if the policy passes, a RejectionReason if it rejects.

Policies are pure: they read the command and the snapshot, never
mutate either, never call collaborators.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from core.commands.base import Command
from core.commands.rejection import RejectionReason

logger = logging.getLogger("evolv.commands")


PolicyEvaluator = Callable[[Command, Any], Optional[RejectionReason]]


def evaluate_policies(
    command: Command,
    state: Any,
    policies: Iterable[PolicyEvaluator],
) -> Optional[RejectionReason]:
    """Evaluate policies in order; return the first rejection or None."""
    for policy in policies:
        reason = policy(command, state)
        if reason is not None:
            logger.info(
                "Command %s (%s) REJECTED by %s: %s",
                command.command_id,
                command.command_type,
                reason.policy_name,
                reason.code,
            )
            return reason
    return None
