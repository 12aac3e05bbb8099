"""Exponential backoff retry policy with proportional jitter.

Attempt 0 runs immediately.  After a failure marked ``retryable`` the
policy waits ``min(max_delay, base_delay * 2**attempt)`` plus up to 20% of
that delay as uniform jitter, then tries again.  Non-retryable errors and
the last error after ``max_attempts`` propagate unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.2


def is_retryable(exc: BaseException) -> bool:
    """Return the structured ``retryable`` flag set by the raising boundary."""
    return bool(getattr(exc, "retryable", False))


class wait_exponential_jitter_ratio(wait_base):
    """Capped exponential delay plus uniform jitter proportional to it."""

    def __init__(
        self,
        base_delay: float,
        max_delay: float,
        jitter_ratio: float = JITTER_RATIO,
        rng: random.Random | None = None,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_ratio = jitter_ratio
        self.rng = rng or random.Random()

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity numbers attempts from 1; the first retry waits base_delay.
        attempt = retry_state.attempt_number - 1
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        return delay + delay * self.jitter_ratio * self.rng.random()


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.info(
        "Attempt %d failed (%s). Retrying in %.2fs...",
        retry_state.attempt_number,
        exc,
        sleep,
    )


class ExponentialBackoff:
    """Retry a zero-argument coroutine function on retryable failures.

    Usage::

        policy = ExponentialBackoff(max_attempts=3, base_delay=1.0, max_delay=10.0)
        report = await policy.execute(lambda: client.analyze(file, kind, schema))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._wait = wait_exponential_jitter_ratio(base_delay, max_delay, rng=rng)

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run *task*, retrying retryable errors up to ``max_attempts`` total calls."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await task()
        raise AssertionError("unreachable: tenacity re-raises the last error")  # pragma: no cover
