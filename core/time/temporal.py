"""
Evolv Core Time — Temporal Helpers
===================================
Pure functions for window logic. All functions take explicit
datetime arguments — no hidden clock access.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def has_elapsed(started_at: datetime, length: timedelta, now: datetime) -> bool:
    """True once `now` is at or past `started_at + length`."""
    return now >= started_at + length
