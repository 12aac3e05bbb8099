"""Bounded-concurrency analysis pool.

Composes the three resilience primitives around every submitted task::

    semaphore.acquire()
      -> circuit_breaker.execute(
           -> retry_policy.execute(task))
    semaphore.release()        # always, success or failure

One pool instance is shared by every task kind in a pipeline run
(Salesforce, email, and image analyses all hit the same upstream), so they
compete for the same concurrency budget and share breaker state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from projsynth.exceptions import AggregateAnalysisError
from projsynth.models import PoolConfig
from projsynth.pool.circuit_breaker import CircuitBreaker
from projsynth.pool.retry import ExponentialBackoff
from projsynth.pool.semaphore import FifoSemaphore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalysisPool:
    """Run batches of zero-argument coroutine functions with backpressure.

    Args:
        config: Pool limits and timings (defaults: 5 concurrent, breaker
            threshold 3 / 30s open, 3 attempts from 1s up to 10s).
        sleep: Sleep function used by the retry policy (tests inject a
            no-op).
        clock: Monotonic clock used by the circuit breaker.
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or PoolConfig()
        self.semaphore = FifoSemaphore(self._config.max_concurrent)

        breaker_kwargs: dict[str, Any] = {}
        if clock is not None:
            breaker_kwargs["clock"] = clock
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self._config.failure_threshold,
            timeout=self._config.timeout,
            reset_timeout=self._config.reset_timeout,
            **breaker_kwargs,
        )

        retry_kwargs: dict[str, Any] = {}
        if sleep is not None:
            retry_kwargs["sleep"] = sleep
        self.retry_policy = ExponentialBackoff(
            max_attempts=self._config.max_attempts,
            base_delay=self._config.base_delay,
            max_delay=self._config.max_delay,
            **retry_kwargs,
        )

    @property
    def config(self) -> PoolConfig:
        return self._config

    async def _run_one(self, task: Callable[[], Awaitable[T]]) -> T:
        await self.semaphore.acquire()
        try:
            return await self.circuit_breaker.execute(
                lambda: self.retry_policy.execute(task)
            )
        finally:
            self.semaphore.release()

    async def execute_with_backpressure(
        self, tasks: Sequence[Callable[[], Awaitable[T]]]
    ) -> list[T]:
        """Run every task, wait for all of them to settle, and collect outcomes.

        Returns:
            Task results in input order (not completion order).

        Raises:
            AggregateAnalysisError: If any task failed.  Carries every
                failure in ``errors`` and every outcome in ``results``.
        """
        if not tasks:
            return []

        outcomes = await asyncio.gather(
            *(self._run_one(task) for task in tasks),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            logger.warning(
                "Analysis batch finished with %d/%d failures",
                len(errors),
                len(outcomes),
            )
            raise AggregateAnalysisError(errors, list(outcomes))

        logger.debug("Analysis batch of %d tasks succeeded", len(outcomes))
        return list(outcomes)
