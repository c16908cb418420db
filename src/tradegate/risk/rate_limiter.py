"""Token-bucket admission control keyed by (category, identity).

Buckets refill lazily and by whole intervals: at each consume attempt the
bucket is topped up to capacity if a full period has passed since its last
refill, no background timer. A denied attempt returns False
immediately; nothing blocks or queues. Bucket state is in memory only and
resets on restart.
"""

import asyncio
import time
from collections.abc import Callable
from enum import Enum

from tradegate.config import RateLimitSettings
from tradegate.exceptions import RateLimitedError
from tradegate.logging import get_logger

logger = get_logger(__name__)


class RateCategory(str, Enum):
    """Operation categories, each with its own capacity and refill period."""

    API = "api"
    TRADING = "trading"
    LOGIN = "login"
    CREDENTIALS = "credentials"


class TokenBucket:
    """Refillable quota of permits.

    Refills intervally: each completed ``period_seconds`` since the last
    refill restores the bucket to ``capacity``. Partial periods add nothing,
    so a drained bucket admits nothing until one full period has elapsed.

    Args:
        capacity: Maximum number of tokens (burst size).
        period_seconds: Time to refill from empty to full.
        now: Creation timestamp on the limiter's clock.
    """

    def __init__(self, capacity: int, period_seconds: float, now: float) -> None:
        if capacity <= 0 or period_seconds <= 0:
            raise ValueError("capacity and period_seconds must be positive")
        self.capacity = capacity
        self.period_seconds = period_seconds
        self.tokens = capacity
        self.last_refill = now

    def refill(self, now: float) -> None:
        periods = int((now - self.last_refill) // self.period_seconds)
        if periods <= 0:
            return
        self.tokens = self.capacity
        # Leftover time carries into the next interval
        self.last_refill += periods * self.period_seconds

    def try_consume(self, tokens: int, now: float) -> bool:
        self.refill(now)
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False


class RateLimiter:
    """Per-(category, identity) token buckets created on first use.

    The bucket table is shared by all concurrent callers; lookup-or-create,
    refill and decrement happen under one lock so two racing requests can
    neither double-create a bucket nor both spend the last token.

    Args:
        settings: Capacity and period per category.
        clock: Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self,
        settings: RateLimitSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or RateLimitSettings()
        self._limits: dict[RateCategory, tuple[int, float]] = {
            RateCategory.API: (settings.api_capacity, settings.api_period_seconds),
            RateCategory.TRADING: (
                settings.trading_capacity,
                settings.trading_period_seconds,
            ),
            RateCategory.LOGIN: (settings.login_capacity, settings.login_period_seconds),
            RateCategory.CREDENTIALS: (
                settings.credentials_capacity,
                settings.credentials_period_seconds,
            ),
        }
        self._clock = clock
        self._buckets: dict[tuple[RateCategory, str], TokenBucket] = {}
        self._lock = asyncio.Lock()

    def limits_for(self, category: RateCategory) -> tuple[int, float]:
        """Return (capacity, period_seconds) for a category."""
        return self._limits[category]

    async def try_consume(
        self, category: RateCategory, identity: str, tokens: int = 1
    ) -> bool:
        """Atomically take ``tokens`` from the bucket if enough are available.

        Args:
            category: Operation category.
            identity: Caller identity (principal id, or e.g. a login name).
            tokens: Number of permits to consume.

        Returns:
            True if admitted, False if the bucket is exhausted.
        """
        key = (category, identity)
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                capacity, period = self._limits[category]
                bucket = TokenBucket(capacity, period, now)
                self._buckets[key] = bucket
            allowed = bucket.try_consume(tokens, now)

        if not allowed:
            logger.warning(
                "rate_limited",
                category=category.value,
                identity=identity,
                tokens=tokens,
            )
        return allowed

    async def admit(self, category: RateCategory, identity: str, tokens: int = 1) -> None:
        """Consume permits or raise.

        Raises:
            RateLimitedError: If the bucket is exhausted.
        """
        if not await self.try_consume(category, identity, tokens):
            capacity, period = self._limits[category]
            raise RateLimitedError(
                f"Rate limit exceeded for {category.value} requests "
                f"({capacity} per {period:g}s). Please wait before retrying."
            )

    async def available_tokens(self, category: RateCategory, identity: str) -> int:
        """Return whole tokens currently available (capacity if never used)."""
        async with self._lock:
            bucket = self._buckets.get((category, identity))
            if bucket is None:
                return self._limits[category][0]
            bucket.refill(self._clock())
            return int(bucket.tokens)

    async def reset(self, category: RateCategory, identity: str) -> None:
        """Drop one bucket so the identity starts again at full capacity."""
        async with self._lock:
            self._buckets.pop((category, identity), None)
        logger.info("rate_bucket_reset", category=category.value, identity=identity)

    async def clear(self) -> None:
        """Drop every bucket."""
        async with self._lock:
            count = len(self._buckets)
            self._buckets.clear()
        logger.info("rate_buckets_cleared", count=count)
