"""Tests for the generation retry policy."""

import pytest

from storyreel.services import RetryPolicy, call_with_retry, is_rate_limit_error


class Flaky:
    """Fails with the given errors, then returns a value."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRateLimitDetection:
    """Tests for rate-limit classification."""

    @pytest.mark.parametrize(
        "message",
        ["429 Too Many Requests", "RESOURCE_EXHAUSTED: try later", "quota exceeded for project"],
    )
    def test_rate_limit_messages(self, message):
        assert is_rate_limit_error(RuntimeError(message))

    def test_other_errors(self):
        assert not is_rate_limit_error(RuntimeError("500 internal error"))


class TestCallWithRetry:
    """Tests for backoff behaviour."""

    def test_success_without_retry(self):
        waits = []
        assert call_with_retry(Flaky(), sleep=waits.append) == "ok"
        assert waits == []

    def test_plain_failures_double(self):
        waits = []
        operation = Flaky(RuntimeError("boom"), RuntimeError("boom"), RuntimeError("boom"))
        assert call_with_retry(operation, sleep=waits.append) == "ok"
        assert waits == [4.0, 8.0, 16.0]
        assert operation.calls == 4

    def test_rate_limits_wait_at_least_floor(self):
        waits = []
        operation = Flaky(*[RuntimeError("429") for _ in range(5)])
        assert call_with_retry(operation, sleep=waits.append) == "ok"
        assert waits == pytest.approx([20.0, 30.0, 45.0, 67.5, 101.25])

    def test_backoff_grows_from_previous_wait(self):
        waits = []
        operation = Flaky(RuntimeError("429"), RuntimeError("boom"), RuntimeError("boom"))
        assert call_with_retry(operation, sleep=waits.append) == "ok"
        assert waits == pytest.approx([20.0, 30.0, 60.0])

    def test_gives_up_after_max_attempts(self):
        waits = []
        policy = RetryPolicy(max_attempts=3, base_delay=1.0)
        operation = Flaky(*[ValueError("bad") for _ in range(5)])
        with pytest.raises(ValueError):
            call_with_retry(operation, policy, sleep=waits.append)
        assert operation.calls == 3
        assert waits == [1.0, 2.0]

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
