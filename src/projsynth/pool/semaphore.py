"""FIFO semaphore with direct slot handoff.

``asyncio.Semaphore`` increments its counter on release and lets the woken
waiter re-acquire later, so a new arrival can barge in between.  Here a
released slot is handed straight to the oldest waiter: the active count
never dips to ``max - 1`` while someone is queued.
"""

from __future__ import annotations

import asyncio
import collections
from types import TracebackType


class FifoSemaphore:
    """Admit up to *max_concurrent* holders; queue the rest in FIFO order."""

    def __init__(self, max_concurrent: int) -> None:
        self._max = max_concurrent
        self._active = 0
        self._waiters: collections.deque[asyncio.Future[None]] = collections.deque()

    @property
    def max_concurrent(self) -> int:
        return self._max

    @property
    def active(self) -> int:
        """Number of current holders."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of callers suspended in :meth:`acquire`."""
        return len(self._waiters)

    async def acquire(self) -> None:
        """Take a slot, suspending until one is handed over if none is free."""
        if self._active < self._max and not self._waiters:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """Free a slot, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Active count unchanged: the slot moves to the waiter.
                waiter.set_result(None)
                return
        self._active -= 1

    async def __aenter__(self) -> FifoSemaphore:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
