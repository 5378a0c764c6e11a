# src/om_tasks/api/rate_limiter.py

from __future__ import annotations

"""
Fixed-rate request throttle.

At most `max_concurrent` permits are outstanding at once. A permit is released
`interval` seconds after it was granted, regardless of how long the caller's
request takes. This approximates "at most N requests started per interval";
a request slower than `interval` no longer occupies a slot, so effective
concurrency can exceed `max_concurrent`.

Waiters are served strictly FIFO: a released permit is handed directly to the
oldest waiter instead of being put back into the pool.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Permit:
    seq: int
    acquired_at: float


class RateLimiter:
    def __init__(self, max_concurrent: int = 5, interval: float = 1.0) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max_concurrent = int(max_concurrent)
        self._interval = max(0.0, float(interval))
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._granted = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def outstanding(self) -> int:
        """Permits granted and not yet released."""
        return self._running

    @property
    def granted(self) -> int:
        """Total permits handed out since creation."""
        return self._granted

    @property
    def waiting(self) -> int:
        return sum(1 for f in self._waiters if not f.done())

    async def acquire(self) -> Permit:
        loop = asyncio.get_running_loop()

        if self._running < self._max_concurrent and not self.waiting:
            self._running += 1
        else:
            fut: asyncio.Future[None] = loop.create_future()
            self._waiters.append(fut)
            logger.debug("RateLimiter: queued (outstanding=%d waiting=%d)", self._running, self.waiting)
            try:
                await fut
            except asyncio.CancelledError:
                if fut.done() and not fut.cancelled():
                    # The slot was handed to us right as we were cancelled; pass it on.
                    self._release()
                else:
                    fut.cancel()
                raise

        self._granted += 1
        permit = Permit(seq=self._granted, acquired_at=time.monotonic())
        loop.call_later(self._interval, self._release)
        return permit

    def _release(self) -> None:
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                # Slot ownership moves to the waiter; _running stays the same.
                fut.set_result(None)
                return
        self._running -= 1
