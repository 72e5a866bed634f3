"""
Evolv Core Time — Injectable Clock
===================================
No datetime.now() inside engine logic. Services receive a Clock and
ask it for the current UTC time, so payment-window and exchange-window
checks are reproducible in tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Injectable time source."""

    def now_utc(self) -> datetime:
        ...  # pragma: no cover


class SystemClock:
    """Production clock — real system time."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Test clock — returns a settable timestamp.

    Usage:
        clock = FixedClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        clock.advance(hours=12)
    """

    def __init__(self, fixed_dt: datetime) -> None:
        if fixed_dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = fixed_dt

    def now_utc(self) -> datetime:
        return self._fixed_dt

    def advance(self, **delta) -> None:
        """Move the clock forward, e.g. advance(hours=12, seconds=1)."""
        self._fixed_dt = self._fixed_dt + timedelta(**delta)

    def set(self, dt: datetime) -> None:
        if dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = dt
