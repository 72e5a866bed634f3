"""
Evolv Core Time — Public API
============================
Explicit clock protocol and window helpers.
"""

from core.time.clock import Clock, FixedClock, SystemClock
from core.time.temporal import has_elapsed

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "has_elapsed",
]
