from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from lexiconbuilder.errors import FetchHTTPError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RESET_MARKERS = ("econnreset", "etimedout", "connection reset", "connection aborted")


def backoff_delay_ms(attempt: int, base_delay_ms: float, rng: Callable[[], float] = random.random) -> float:
    """Delay before retry number ``attempt`` (1-based).

    ``base * 2**(attempt-1)`` plus a jitter drawn from
    ``[0, clamp(15% of that, 25ms, 250ms))``.
    """
    ms = base_delay_ms * (2 ** (attempt - 1))
    jitter_cap = min(250.0, max(25.0, ms * 0.15))
    return ms + math.floor(rng() * jitter_cap)


def is_retryable_fetch_error(exc: BaseException) -> bool:
    """Transient transport failures and 429/5xx responses are retried; everything else is final."""
    if isinstance(exc, FetchHTTPError):
        return exc.retryable
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, (httpx.TransportError, OSError)):
        text = str(exc).lower()
        return any(marker in text for marker in _RESET_MARKERS)
    return False


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay_ms: float,
    retry_on: Callable[[BaseException], bool] = is_retryable_fetch_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
    label: str = "",
) -> T:
    """Call ``fn`` up to ``retries + 1`` times, sleeping between retryable failures.

    The last error is re-raised once attempts are exhausted or the error is
    not retryable.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            attempt += 1
            if attempt > retries or not retry_on(e):
                raise
            delay = backoff_delay_ms(attempt, base_delay_ms, rng)
            logger.warning("Retry %d/%d %s after %s (%.0fms)", attempt, retries, label, e, delay)
            await sleep(delay / 1000.0)
