"""Tests for the token-bucket RateLimiter.

A mutable fake clock drives refills, so no test sleeps.
"""

import asyncio

import pytest

from tradegate.config import RateLimitSettings
from tradegate.exceptions import RateLimitedError
from tradegate.risk.rate_limiter import RateCategory, RateLimiter, TokenBucket


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(RateLimitSettings(), clock=clock)


class TestTokenBucket:
    def test_starts_full(self) -> None:
        bucket = TokenBucket(5, 60.0, now=0.0)
        assert bucket.tokens == 5

    def test_refill_capped_at_capacity(self) -> None:
        bucket = TokenBucket(5, 60.0, now=0.0)
        bucket.try_consume(5, now=0.0)
        bucket.refill(now=10_000.0)
        assert bucket.tokens == 5

    def test_partial_period_adds_nothing(self) -> None:
        bucket = TokenBucket(5, 60.0, now=0.0)
        bucket.try_consume(4, now=0.0)
        bucket.refill(now=59.9)
        assert bucket.tokens == 1
        bucket.refill(now=60.0)
        assert bucket.tokens == 5

    def test_leftover_time_carries_over(self) -> None:
        bucket = TokenBucket(5, 60.0, now=0.0)
        bucket.try_consume(5, now=0.0)
        bucket.refill(now=150.0)
        assert bucket.last_refill == 120.0
        bucket.try_consume(5, now=150.0)
        assert bucket.try_consume(1, now=179.9) is False
        assert bucket.try_consume(1, now=180.0) is True

    def test_clock_going_backwards_adds_nothing(self) -> None:
        bucket = TokenBucket(5, 60.0, now=100.0)
        bucket.try_consume(5, now=100.0)
        bucket.refill(now=50.0)
        assert bucket.tokens == 0

    def test_rejects_non_positive_config(self) -> None:
        with pytest.raises(ValueError):
            TokenBucket(0, 60.0, now=0.0)
        with pytest.raises(ValueError):
            TokenBucket(5, 0.0, now=0.0)


class TestCapacityAndRefill:
    """N consumes succeed, the N+1th fails until time refills the bucket."""

    @pytest.mark.asyncio
    async def test_trading_capacity_then_denied(self, limiter: RateLimiter) -> None:
        results = [
            await limiter.try_consume(RateCategory.TRADING, "alice") for _ in range(11)
        ]
        assert results[:10] == [True] * 10
        assert results[10] is False

    @pytest.mark.asyncio
    async def test_denied_until_full_period_elapses(
        self, limiter: RateLimiter, clock: FakeClock
    ) -> None:
        for _ in range(10):
            await limiter.try_consume(RateCategory.TRADING, "alice")

        for step in (6.0, 30.0, 23.5):
            clock.advance(step)
            assert await limiter.try_consume(RateCategory.TRADING, "alice") is False

        clock.advance(0.5)
        assert await limiter.try_consume(RateCategory.TRADING, "alice") is True

    @pytest.mark.asyncio
    async def test_full_refill_after_one_period(
        self, limiter: RateLimiter, clock: FakeClock
    ) -> None:
        for _ in range(10):
            await limiter.try_consume(RateCategory.TRADING, "alice")

        clock.advance(30.0)
        assert await limiter.available_tokens(RateCategory.TRADING, "alice") == 0

        clock.advance(30.0)
        results = [
            await limiter.try_consume(RateCategory.TRADING, "alice") for _ in range(11)
        ]
        assert results.count(True) == 10

    @pytest.mark.asyncio
    async def test_multi_token_consume(self, limiter: RateLimiter) -> None:
        assert await limiter.try_consume(RateCategory.LOGIN, "bob", tokens=5) is True
        assert await limiter.try_consume(RateCategory.LOGIN, "bob") is False


class TestIsolation:
    @pytest.mark.asyncio
    async def test_identities_have_separate_buckets(self, limiter: RateLimiter) -> None:
        for _ in range(10):
            await limiter.try_consume(RateCategory.TRADING, "alice")
        assert await limiter.try_consume(RateCategory.TRADING, "alice") is False
        assert await limiter.try_consume(RateCategory.TRADING, "bob") is True

    @pytest.mark.asyncio
    async def test_categories_have_separate_buckets(self, limiter: RateLimiter) -> None:
        for _ in range(10):
            await limiter.try_consume(RateCategory.TRADING, "alice")
        assert await limiter.try_consume(RateCategory.API, "alice") is True

    def test_default_limits(self, limiter: RateLimiter) -> None:
        assert limiter.limits_for(RateCategory.API) == (60, 60.0)
        assert limiter.limits_for(RateCategory.TRADING) == (10, 60.0)
        assert limiter.limits_for(RateCategory.LOGIN) == (5, 900.0)
        assert limiter.limits_for(RateCategory.CREDENTIALS) == (5, 300.0)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_consumers_never_overspend(self, limiter: RateLimiter) -> None:
        results = await asyncio.gather(
            *(limiter.try_consume(RateCategory.TRADING, "alice") for _ in range(25))
        )
        assert sum(results) == 10


class TestAdmit:
    @pytest.mark.asyncio
    async def test_admit_raises_when_exhausted(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            await limiter.admit(RateCategory.CREDENTIALS, "alice")
        with pytest.raises(RateLimitedError, match="credentials"):
            await limiter.admit(RateCategory.CREDENTIALS, "alice")


class TestAdministration:
    @pytest.mark.asyncio
    async def test_unused_bucket_reports_capacity(self, limiter: RateLimiter) -> None:
        assert await limiter.available_tokens(RateCategory.API, "nobody") == 60

    @pytest.mark.asyncio
    async def test_reset_restores_capacity(self, limiter: RateLimiter) -> None:
        for _ in range(10):
            await limiter.try_consume(RateCategory.TRADING, "alice")
        await limiter.reset(RateCategory.TRADING, "alice")
        assert await limiter.try_consume(RateCategory.TRADING, "alice") is True

    @pytest.mark.asyncio
    async def test_clear_drops_every_bucket(self, limiter: RateLimiter) -> None:
        for identity in ("alice", "bob"):
            for _ in range(10):
                await limiter.try_consume(RateCategory.TRADING, identity)
        await limiter.clear()
        assert await limiter.available_tokens(RateCategory.TRADING, "alice") == 10
        assert await limiter.available_tokens(RateCategory.TRADING, "bob") == 10
