"""
Tests for core.resilience — retry with exponential backoff.
"""

import pytest

from core.commands.rejection import ReasonCode
from core.errors import ExternalServiceError
from core.resilience import NO_RETRY, RetryPolicy, call_with_retry
from integration.adapters import PermanentError, TransientError


class Flaky:
    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.calls = 0
        self.result = result

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


# ── RetryPolicy Tests ────────────────────────────────────────

class TestRetryPolicy:
    def test_delay_doubles(self):
        policy = RetryPolicy(max_retries=4, backoff_base_seconds=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 16.0]

    def test_delay_capped(self):
        policy = RetryPolicy(max_retries=10, backoff_base_seconds=2.0, max_backoff_seconds=30.0)
        assert policy.delay_for(6) == 30.0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)


# ── call_with_retry Tests ────────────────────────────────────

class TestCallWithRetry:
    def test_success_first_time(self):
        fn = Flaky()
        assert call_with_retry(fn, RetryPolicy(), operation="op", sleep=lambda s: None) == "ok"
        assert fn.calls == 1

    def test_transient_failures_retried_with_backoff(self):
        slept = []
        fn = Flaky(TransientError("timeout"), TransientError("timeout"))
        policy = RetryPolicy(max_retries=3, backoff_base_seconds=1.0)
        assert call_with_retry(fn, policy, operation="op", sleep=slept.append) == "ok"
        assert fn.calls == 3
        assert slept == [1.0, 2.0]

    def test_permanent_failure_not_retried(self):
        fn = Flaky(PermanentError("bad request"))
        with pytest.raises(PermanentError):
            call_with_retry(fn, RetryPolicy(), operation="op", sleep=lambda s: None)
        assert fn.calls == 1

    def test_exhausted_retries(self):
        fn = Flaky(*(TransientError("down", "carrier") for _ in range(3)))
        with pytest.raises(ExternalServiceError) as exc:
            call_with_retry(fn, RetryPolicy(max_retries=2, backoff_base_seconds=0.0),
                            operation="shipment", sleep=lambda s: None)
        assert exc.value.code == ReasonCode.RETRIES_EXHAUSTED
        assert exc.value.system_id == "carrier"
        assert not exc.value.retryable
        assert "down" in str(exc.value)
        assert fn.calls == 3

    def test_no_retry_policy(self):
        fn = Flaky(TransientError("timeout"))
        with pytest.raises(ExternalServiceError) as exc:
            call_with_retry(fn, NO_RETRY, operation="refund", sleep=lambda s: None)
        assert exc.value.code == ReasonCode.RETRIES_EXHAUSTED
        assert fn.calls == 1
