"""
Evolv Resilience — Retry with Exponential Backoff
==================================================
Long-running collaborator calls (gateway order creation, carrier
shipment creation, refund initiation) are retried with exponential
backoff when the failure is flagged retryable.

Delay before attempt n (n ≥ 1) = min(base * 2**(n-1), max_backoff).

Non-retryable failures propagate immediately. When the last attempt
fails, RETRIES_EXHAUSTED is raised carrying the last error message so
the caller can park the aggregate for manual intervention.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import ExternalServiceError

logger = logging.getLogger("evolv.resilience")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_base_seconds: float = 2.0
    max_backoff_seconds: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0.")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(
            self.backoff_base_seconds * (2 ** (attempt - 1)),
            self.max_backoff_seconds,
        )


NO_RETRY = RetryPolicy(max_retries=0, backoff_base_seconds=0.0)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    operation: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `fn` until it succeeds or retries run out.

    Only ExternalServiceError with retryable=True is retried.
    """
    last_error: ExternalServiceError | None = None
    for attempt in range(policy.max_retries + 1):
        if attempt:
            delay = policy.delay_for(attempt)
            logger.info(
                "Retrying %s (attempt %d/%d) in %.1fs",
                operation, attempt, policy.max_retries, delay,
            )
            sleep(delay)
        try:
            return fn()
        except ExternalServiceError as exc:
            if not exc.retryable:
                raise
            last_error = exc
            logger.warning("%s failed (retryable): %s", operation, exc)

    logger.error(
        "%s failed after %d retries: %s", operation, policy.max_retries, last_error,
    )
    raise ExternalServiceError(
        RejectionReason(
            code=ReasonCode.RETRIES_EXHAUSTED,
            message=f"{operation} failed after {policy.max_retries} retries: {last_error}",
            policy_name="call_with_retry",
        ),
        system_id=getattr(last_error, "system_id", ""),
        retryable=False,
    )
