"""Tests for imgmcp.core.retry: bounded exponential backoff.

Tests cover:
- Exactly max_attempts attempts for a persistently transient failure.
- Delays doubling from the initial delay.
- Non-retryable failures attempted exactly once.
- Success after transient failures.
"""

from __future__ import annotations

import asyncio

import pytest

from imgmcp.core.errors import InvalidInput, PathDenied, UpstreamFailure
from imgmcp.core.retry import RetryPolicy, is_retryable, run_with_retry


class Flaky:
    """Operation that fails ``failures`` times, then returns ``result``."""

    def __init__(self, failures, error_factory, result="ok"):
        self.failures = failures
        self.error_factory = error_factory
        self.result = result
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error_factory()
        return self.result


def transient():
    return UpstreamFailure("rate limited", transient=True, status_code=429)


class TestRetryPolicy:
    """Verify bounded exponential backoff."""

    def test_gives_up_after_max_attempts(self, recording_sleep):
        """A persistent transient failure is tried exactly max_attempts times."""
        operation = Flaky(10, transient)
        policy = RetryPolicy(max_attempts=4, initial_delay=1.0, sleep=recording_sleep)

        with pytest.raises(UpstreamFailure):
            asyncio.run(policy.run(operation))

        assert operation.attempts == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    def test_delays_double(self):
        """Each delay is twice the previous one."""
        policy = RetryPolicy(max_attempts=5, initial_delay=0.5)
        assert [policy.delay_for(k) for k in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_success_after_transient_failures(self, recording_sleep):
        """The result is returned once an attempt succeeds."""
        operation = Flaky(2, transient, result="image")
        policy = RetryPolicy(max_attempts=4, initial_delay=1.0, sleep=recording_sleep)

        assert asyncio.run(policy.run(operation)) == "image"
        assert operation.attempts == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: InvalidInput("bad prompt"),
            lambda: PathDenied(),
            lambda: UpstreamFailure("invalid key", transient=False, status_code=403),
        ],
    )
    def test_non_retryable_attempted_once(self, recording_sleep, factory):
        """Non-retryable failures are raised on the first attempt."""
        operation = Flaky(10, factory)
        policy = RetryPolicy(max_attempts=4, initial_delay=1.0, sleep=recording_sleep)

        with pytest.raises(Exception):
            asyncio.run(policy.run(operation))

        assert operation.attempts == 1
        assert recording_sleep.delays == []

    def test_single_attempt_policy(self, recording_sleep):
        """A one-attempt policy never sleeps."""
        operation = Flaky(1, transient)
        with pytest.raises(UpstreamFailure):
            asyncio.run(run_with_retry(operation, 1, 1.0, sleep=recording_sleep))
        assert operation.attempts == 1

    def test_runs_are_independent(self, recording_sleep):
        """Attempt counts do not carry over between runs."""
        policy = RetryPolicy(max_attempts=2, initial_delay=1.0, sleep=recording_sleep)
        for _ in range(2):
            operation = Flaky(1, transient)
            asyncio.run(policy.run(operation))
            assert operation.attempts == 2

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"initial_delay": -1}])
    def test_invalid_parameters(self, kwargs):
        """Zero attempts or a negative delay are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestIsRetryable:
    """Verify retry classification."""

    def test_classification(self):
        """Transient upstream and transport errors are retryable."""
        assert is_retryable(transient())
        assert is_retryable(ConnectionError("reset"))
        assert not is_retryable(InvalidInput("x"))
        assert not is_retryable(UpstreamFailure("x", transient=False))
