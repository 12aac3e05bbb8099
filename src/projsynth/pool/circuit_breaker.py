"""Consecutive-failure circuit breaker guarding the AI analysis service.

Tracks consecutive failures across every call routed through it and
transitions through CLOSED -> OPEN -> HALF_OPEN states so that a batch
stops hammering an upstream that is clearly down.

Hand-rolled instead of pybreaker because pybreaker's async path is built
on tornado coroutines, not asyncio.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from projsynth.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker state machine states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast after *failure_threshold* consecutive failures.

    * CLOSED -- calls execute; each failure increments the counter, a
      success resets it.  Reaching the threshold trips to OPEN.
    * OPEN -- calls are rejected with :class:`CircuitOpenError` until
      *timeout* seconds have elapsed since the trip; the first call after
      that moves the breaker to HALF_OPEN and is let through as a probe.
    * HALF_OPEN -- exactly one probe is outstanding.  Success closes the
      breaker; failure re-opens it and restarts the timeout window.  Other
      calls are rejected while the probe runs, unless the probe has been
      outstanding longer than *reset_timeout*.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        timeout: float = 30.0,
        reset_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._timeout = timeout
        self._reset_timeout = reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._probe_started_at: float | None = None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* if the breaker admits it.

        Raises:
            CircuitOpenError: If the breaker is open (or a probe is already
                outstanding) -- *operation* is not invoked.
        """
        self._admit()

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _admit(self) -> None:
        now = self._clock()

        if self._state == CircuitState.OPEN:
            elapsed = now - (self._opened_at or now)
            if elapsed < self._timeout:
                raise CircuitOpenError(
                    f"CircuitBreaker is open. Call blocked for another "
                    f"{self._timeout - elapsed:.1f}s."
                )
            logger.info(
                "Circuit breaker OPEN -> HALF_OPEN after %.1fs, admitting probe",
                elapsed,
            )
            self._state = CircuitState.HALF_OPEN
            self._probe_started_at = now
            return

        if self._state == CircuitState.HALF_OPEN:
            started = self._probe_started_at
            if started is not None and now - started < self._reset_timeout:
                raise CircuitOpenError("CircuitBreaker is half-open; probe in flight.")
            logger.info("Half-open probe outstanding for %.1fs, admitting another", now - (started or now))
            self._probe_started_at = now

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker HALF_OPEN -> CLOSED after successful probe")
            self._state = CircuitState.CLOSED
            self._probe_started_at = None
        self._failure_count = 0

    def _on_failure(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.warning("Half-open probe failed, re-opening circuit")
            self._trip()
            return

        self._failure_count += 1
        if self._state == CircuitState.CLOSED and self._failure_count >= self._failure_threshold:
            self._trip()

    def _trip(self) -> None:
        prev = self._state
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_started_at = None
        logger.warning(
            "Circuit breaker %s -> OPEN (consecutive_failures=%d); blocking calls for %.1fs",
            prev.value,
            self._failure_count,
            self._timeout,
        )
