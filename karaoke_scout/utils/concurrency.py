"""Shared concurrency primitives: bounded gather and the quota retry policy.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped in
   a semaphore acquire/release.  The pipeline uses it to cap how many
   browser scraping tasks run at once, independently of the (larger)
   model-call concurrency enforced by the dispatcher.

2. **RetryPolicy / retry_on_rate_limit** -- bounded exponential backoff with
   jitter, applied *only* to :class:`RateLimitError`.  Every other exception
   propagates on the first attempt so quota handling never masks genuine
   content errors.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from karaoke_scout.utils.errors import RateLimitError
from karaoke_scout.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables execute simultaneously.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input awaitables.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )


class RetryPolicy(BaseModel):
    """Named backoff policy for quota / rate-limit errors.

    The delay after failed attempt ``n`` (1-based) is
    ``min(max_delay, base_delay * 2 ** (n - 1))`` scaled by a random factor
    in ``[1 - jitter, 1 + jitter]``.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=4, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    jitter: float = Field(default=0.25, ge=0.0, le=1.0)

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Return the sleep (seconds) to take after failed attempt *attempt*."""
        raw = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        if self.jitter <= 0:
            return raw
        roll = (rng or random).uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return max(0.0, raw * roll)


async def retry_on_rate_limit(
    func: Callable[[], Awaitable[_T]],
    policy: RetryPolicy,
    *,
    operation: str = "llm_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> _T:
    """Call *func* until it succeeds, retrying only on :class:`RateLimitError`.

    Parameters
    ----------
    func:
        Zero-argument coroutine factory; called once per attempt.
    policy:
        The backoff policy.
    operation:
        Label used in retry log events.
    sleep:
        Injected sleep coroutine (tests pass a no-op).

    Raises
    ------
    RateLimitError
        When the last permitted attempt is still rate limited.
    Exception
        Any non-quota error, unchanged, on the attempt it occurred.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except RateLimitError as exc:
            if attempt >= policy.max_attempts:
                _logger.warning(
                    "rate_limit_retries_exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            _logger.info(
                "rate_limit_backoff",
                operation=operation,
                attempt=attempt,
                delay_s=round(delay, 2),
            )
            await sleep(delay)
            attempt += 1
