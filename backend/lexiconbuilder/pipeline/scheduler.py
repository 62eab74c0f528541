"""Rate-limited task scheduler.

``RateLimiter`` admits async tasks in FIFO order while keeping two limits:

- at most ``concurrency`` tasks running at once;
- at most ``rate_per_minute`` task starts within any trailing window
  (60 seconds unless ``window_s`` says otherwise).

Either limit may be ``None`` (unbounded). When only the rate limit blocks
the queue head, a single wake-up timer is armed for the moment the oldest
counted start leaves the window.

Usage:
    limiter = RateLimiter(concurrency=100, rate_per_minute=1000)
    results = await asyncio.gather(*(limiter.schedule(lambda r=r: work(r)) for r in records))
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class RateLimiter:
    def __init__(
        self,
        concurrency: int | None = None,
        rate_per_minute: int | None = None,
        *,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if rate_per_minute is not None and rate_per_minute < 1:
            raise ValueError("rate_per_minute must be >= 1")
        self._concurrency = concurrency
        self._rate = rate_per_minute
        self._window_s = window_s
        self._clock = clock
        self._active = 0
        self._starts: deque[float] = deque()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._timer: asyncio.TimerHandle | None = None

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def schedule(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task()`` once both limits allow it and return its result.

        The slot is released whether the task returns, raises or is cancelled.
        """
        now = self._clock()
        if not self._waiters and self._has_slot() and self._has_budget(now):
            self._admit(now)
        else:
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            self._dispatch()
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter.done() and not waiter.cancelled():
                    # Admitted in the same tick we were cancelled.
                    self._release()
                else:
                    with contextlib.suppress(ValueError):
                        self._waiters.remove(waiter)
                raise

        try:
            return await task()
        finally:
            self._release()

    __call__ = schedule

    def _has_slot(self) -> bool:
        return self._concurrency is None or self._active < self._concurrency

    def _has_budget(self, now: float) -> bool:
        if self._rate is None:
            return True
        while self._starts and now - self._starts[0] >= self._window_s:
            self._starts.popleft()
        return len(self._starts) < self._rate

    def _admit(self, now: float) -> None:
        self._active += 1
        if self._rate is not None:
            self._starts.append(now)

    def _release(self) -> None:
        self._active -= 1
        self._dispatch()

    def _dispatch(self) -> None:
        now = self._clock()
        while self._waiters and self._has_slot():
            if not self._has_budget(now):
                self._arm_timer(now)
                return
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._admit(now)
            waiter.set_result(None)

    def _arm_timer(self, now: float) -> None:
        if self._timer is not None or not self._starts:
            return
        delay = max(0.0, self._starts[0] + self._window_s - now)
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._dispatch()
