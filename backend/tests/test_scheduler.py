"""Tests for the rate-limited scheduler."""
from __future__ import annotations

import asyncio
import random
import time

import pytest

from lexiconbuilder.pipeline.scheduler import RateLimiter


class TestRateLimiterConstruction:
    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(concurrency=0)

    def test_rejects_zero_rate(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(rate_per_minute=0)

    @pytest.mark.asyncio
    async def test_unbounded_runs_everything(self) -> None:
        limiter = RateLimiter()

        async def work(i: int) -> int:
            await asyncio.sleep(0)
            return i * 2

        results = await asyncio.gather(*(limiter.schedule(lambda i=i: work(i)) for i in range(10)))
        assert results == [i * 2 for i in range(10)]

    @pytest.mark.asyncio
    async def test_limiter_is_callable(self) -> None:
        limiter = RateLimiter(concurrency=1)

        async def work() -> str:
            return "done"

        assert await limiter(work) == "done"
        assert limiter.active == 0


class TestConcurrencyLimit:
    @pytest.mark.asyncio
    async def test_never_exceeds_concurrency(self) -> None:
        limiter = RateLimiter(concurrency=2)
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await asyncio.gather(*(limiter.schedule(work) for _ in range(8)))
        assert peak == 2
        assert limiter.active == 0

    @pytest.mark.asyncio
    async def test_admits_in_fifo_order(self) -> None:
        limiter = RateLimiter(concurrency=1)
        started: list[int] = []

        async def work(i: int) -> None:
            started.append(i)
            await asyncio.sleep(0)

        await asyncio.gather(*(limiter.schedule(lambda i=i: work(i)) for i in range(6)))
        assert started == list(range(6))

    @pytest.mark.asyncio
    async def test_failure_releases_slot(self) -> None:
        limiter = RateLimiter(concurrency=1)

        async def boom() -> None:
            raise RuntimeError("boom")

        async def ok() -> str:
            return "ok"

        results = await asyncio.gather(limiter.schedule(boom), limiter.schedule(ok), return_exceptions=True)
        assert isinstance(results[0], RuntimeError)
        assert results[1] == "ok"
        assert limiter.active == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_dropped(self) -> None:
        limiter = RateLimiter(concurrency=1)
        gate = asyncio.Event()
        ran: list[str] = []

        async def blocker() -> None:
            await gate.wait()
            ran.append("a")

        async def record(name: str) -> None:
            ran.append(name)

        first = asyncio.create_task(limiter.schedule(blocker))
        second = asyncio.create_task(limiter.schedule(lambda: record("b")))
        third = asyncio.create_task(limiter.schedule(lambda: record("c")))
        await asyncio.sleep(0)
        assert limiter.queued == 2

        second.cancel()
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(first, third)

        assert second.cancelled()
        assert ran == ["a", "c"]
        assert limiter.active == 0
        assert limiter.queued == 0


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_starts_per_window_never_exceed_rate(self) -> None:
        window = 0.2
        rate = 3
        limiter = RateLimiter(concurrency=50, rate_per_minute=rate, window_s=window)
        starts: list[float] = []

        async def work() -> None:
            starts.append(time.monotonic())

        await asyncio.gather(*(limiter.schedule(work) for _ in range(7)))

        assert len(starts) == 7
        starts.sort()
        for i in range(len(starts) - rate):
            # The (i+rate)-th start must fall outside the window opened by the i-th.
            assert starts[i + rate] - starts[i] >= window - 0.01

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_random_durations_respect_both_limits(self, seed: int) -> None:
        rng = random.Random(seed)
        window = 0.15
        rate = 4
        concurrency = 3
        limiter = RateLimiter(concurrency=concurrency, rate_per_minute=rate, window_s=window)
        durations = [rng.uniform(0.0, 0.08) for _ in range(14)]
        starts: list[float] = []
        running = 0
        peak = 0

        async def work(duration: float) -> None:
            nonlocal running, peak
            starts.append(time.monotonic())
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(duration)
            running -= 1

        async def submit(i: int, duration: float) -> None:
            await asyncio.sleep(rng.uniform(0.0, 0.05) if i % 3 == 0 else 0)
            await limiter.schedule(lambda: work(duration))

        await asyncio.gather(*(submit(i, d) for i, d in enumerate(durations)))

        assert len(starts) == len(durations)
        assert peak <= concurrency
        assert limiter.active == 0
        assert limiter.queued == 0
        starts.sort()
        for i in range(len(starts) - rate):
            assert starts[i + rate] - starts[i] >= window - 0.01

    @pytest.mark.asyncio
    async def test_first_batch_starts_immediately(self) -> None:
        limiter = RateLimiter(rate_per_minute=5, window_s=10.0)
        started = 0

        async def work() -> None:
            nonlocal started
            started += 1

        tasks = [asyncio.create_task(limiter.schedule(work)) for _ in range(7)]
        await asyncio.sleep(0.05)
        assert started == 5
        assert limiter.queued == 2
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
