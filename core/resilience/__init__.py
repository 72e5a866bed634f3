"""
Evolv Core Resilience — Public API
==================================
Retry with exponential backoff for collaborator calls.
"""

from core.resilience.retry import NO_RETRY, RetryPolicy, call_with_retry

__all__ = [
    "NO_RETRY",
    "RetryPolicy",
    "call_with_retry",
]
