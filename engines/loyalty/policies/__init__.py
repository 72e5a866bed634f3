"""
Evolv Loyalty Engine — Policies
===============================
Reservation guards.
"""

from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason


def reservation_within_available_policy(
    points: int,
    available: int,
) -> Optional[RejectionReason]:
    """A reservation may not exceed balance minus other reservations."""
    if points > available:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_BALANCE,
            message=f"Customer has {available} points available, needs {points}.",
            policy_name="reservation_within_available_policy",
        )
    return None


def positive_points_policy(points: int) -> Optional[RejectionReason]:
    if points <= 0:
        return RejectionReason(
            code=ReasonCode.INVALID_POINTS,
            message="Points must be > 0.",
            policy_name="positive_points_policy",
        )
    return None
