"""Bounded exponential-backoff retry for upstream calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import ImgMcpError, redact_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_INITIAL_DELAY = 1.0


def is_retryable(error: BaseException) -> bool:
    """Classify a failure.

    Core errors carry their own ``retryable`` flag (invalid input, path
    denials and terminal upstream errors are not retryable).  Anything else
    is treated as transient.
    """
    if isinstance(error, ImgMcpError):
        return error.retryable
    return isinstance(error, Exception)


class RetryPolicy:
    """Run an async operation, retrying transient failures.

    Attempt ``k`` (counting from 0) that fails is followed by a wait of
    ``initial_delay * 2**k`` seconds.  After ``max_attempts`` attempts the last
    failure propagates.  Each :meth:`run` call keeps its own state.

    Attributes:
        max_attempts: Total number of attempts, including the first.
        initial_delay: Delay in seconds after the first failed attempt.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if initial_delay < 0:
            raise ValueError(f"initial_delay must not be negative, got {initial_delay}")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (2**attempt)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not is_retryable(e) or attempt == self.max_attempts - 1:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retry attempt {attempt + 1}/{self.max_attempts - 1} after {delay:.2f}s: "
                    f"{redact_secrets(str(e))}"
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Convenience wrapper around :class:`RetryPolicy`."""
    return await RetryPolicy(max_attempts, initial_delay, sleep=sleep).run(operation)
