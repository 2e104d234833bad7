"""Unit tests for throttled_gather and the quota retry policy."""

from __future__ import annotations

import asyncio
import random

import pytest

from karaoke_scout.utils.concurrency import RetryPolicy, retry_on_rate_limit, throttled_gather
from karaoke_scout.utils.errors import LLMError, RateLimitError


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ======================================================================
# throttled_gather
# ======================================================================


class TestThrottledGather:
    @pytest.mark.asyncio()
    async def test_preserves_order(self) -> None:
        async def _value(n: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return n

        results = await throttled_gather(
            [_value(1, 0.03), _value(2, 0.0), _value(3, 0.01)], asyncio.Semaphore(3)
        )
        assert results == [1, 2, 3]

    @pytest.mark.asyncio()
    async def test_bounds_concurrency(self) -> None:
        running = 0
        peak = 0

        async def _task() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await throttled_gather([_task() for _ in range(6)], asyncio.Semaphore(2))
        assert peak == 2

    @pytest.mark.asyncio()
    async def test_exceptions_returned(self) -> None:
        async def _boom() -> None:
            raise ValueError("bad")

        async def _ok() -> str:
            return "ok"

        results = await throttled_gather([_boom(), _ok()], asyncio.Semaphore(1))
        assert isinstance(results[0], ValueError)
        assert results[1] == "ok"


# ======================================================================
# RetryPolicy
# ======================================================================


class TestRetryPolicy:
    def test_exponential_without_jitter(self) -> None:
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=0.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self) -> None:
        policy = RetryPolicy(base_delay=10.0, max_delay=15.0, jitter=0.0)
        assert policy.delay_for(5) == 15.0

    def test_jitter_stays_in_band(self) -> None:
        policy = RetryPolicy(base_delay=4.0, jitter=0.25)
        rng = random.Random(7)
        for _ in range(50):
            assert 3.0 <= policy.delay_for(1, rng) <= 5.0

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


# ======================================================================
# retry_on_rate_limit
# ======================================================================


class TestRetryOnRateLimit:
    @pytest.mark.asyncio()
    async def test_retries_until_success(self) -> None:
        calls = 0

        async def _call() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise RateLimitError("slow down", "openai")
            return "done"

        sleep = _SleepRecorder()
        policy = RetryPolicy(max_attempts=4, base_delay=1.0, jitter=0.0)
        assert await retry_on_rate_limit(_call, policy, sleep=sleep) == "done"
        assert calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio()
    async def test_gives_up_after_max_attempts(self) -> None:
        calls = 0

        async def _call() -> str:
            nonlocal calls
            calls += 1
            raise RateLimitError("slow down")

        sleep = _SleepRecorder()
        with pytest.raises(RateLimitError):
            await retry_on_rate_limit(_call, RetryPolicy(max_attempts=3, jitter=0.0), sleep=sleep)
        assert calls == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio()
    async def test_other_errors_not_retried(self) -> None:
        calls = 0

        async def _call() -> str:
            nonlocal calls
            calls += 1
            raise LLMError("bad request")

        sleep = _SleepRecorder()
        with pytest.raises(LLMError):
            await retry_on_rate_limit(_call, RetryPolicy(), sleep=sleep)
        assert calls == 1
        assert sleep.delays == []
