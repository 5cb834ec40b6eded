"""Redis-backed per-tenant rate limiter for Reddit API calls.

Implements:
- Token bucket per tenant (requests per minute)
- Inflight concurrency limit per tenant
- Exponential backoff strategy for 429/5xx responses

Each tenant spends its own budget, so one busy tenant cannot exhaust the
Reddit allowance of another.

Usage:
    limiter = RateLimiter.for_tenant(redis_client, tenant_id=42)

    async with limiter:
        response = await client.get(...)
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


class AsyncRedisProtocol(Protocol):
    """Protocol for async Redis client."""

    async def get(self, key: str) -> Optional[bytes]: ...
    async def set(self, key: str, value: str) -> Any: ...
    async def incr(self, key: str) -> int: ...
    async def decr(self, key: str) -> int: ...
    async def delete(self, *keys: str) -> int: ...
    async def expire(self, key: str, seconds: int) -> bool: ...
    def pipeline(self) -> Any: ...


class RateLimitExceeded(Exception):
    """Raised when the tenant's budget is exhausted and cannot acquire."""

    pass


@dataclass
class RateLimitConfig:
    """Configuration for one rate-limit bucket.

    Attributes:
        bucket_id: Unique bucket identifier (e.g., "reddit:42").
        requests_per_minute: Token refill rate.
        max_concurrent: Maximum concurrent requests allowed.
        bucket_size: Burst capacity (0 means same as requests_per_minute).
    """

    bucket_id: str
    requests_per_minute: int = 60
    max_concurrent: int = 2
    bucket_size: int = 0

    def __post_init__(self):
        if self.bucket_size == 0:
            self.bucket_size = self.requests_per_minute


@dataclass
class BackoffStrategy:
    """Exponential backoff strategy for provider retries.

    Attributes:
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        multiplier: Multiplier for exponential increase.
        jitter: Whether to add +/- 25% random jitter.
        max_retries: Maximum number of retries for 5xx responses.
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    max_retries: int = 2

    _status_delays: dict[int, float] = field(default_factory=lambda: {
        500: 2.0,
        502: 5.0,
        503: 5.0,
        504: 5.0,
    })

    def _apply(self, delay: float) -> float:
        if self.jitter:
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)
        delay = min(delay, self.max_delay)
        return max(0.1, delay)

    def get_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return self._apply(self.base_delay * (self.multiplier ** (attempt - 1)))

    def get_delay_for_status(
        self,
        status_code: int,
        attempt: int,
        retry_after: Optional[int] = None,
    ) -> float:
        """Delay before retrying a response with ``status_code``.

        A Retry-After header value wins over the computed delay when larger.
        """
        if retry_after is not None:
            return max(float(retry_after), self.get_delay(attempt))

        base = self._status_delays.get(status_code, self.base_delay)
        return self._apply(base * (self.multiplier ** (attempt - 1)))

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """Only transient 5xx responses are retried in place.

        429 is not retried here: the hunting run stops for that tenant and
        picks up again on the next cycle.
        """
        if 500 <= status_code < 600:
            return attempt <= self.max_retries
        return False


class RateLimiter:
    """Token bucket plus concurrency limiter for one tenant.

    Uses Redis keys:
    - rate:{bucket_id}:tokens
    - rate:{bucket_id}:last_refill
    - rate:{bucket_id}:inflight
    """

    def __init__(self, redis: AsyncRedisProtocol, config: RateLimitConfig):
        self.redis = redis
        self.config = config

        self._tokens_key = f"rate:{config.bucket_id}:tokens"
        self._refill_key = f"rate:{config.bucket_id}:last_refill"
        self._inflight_key = f"rate:{config.bucket_id}:inflight"

        self._refill_rate = config.requests_per_minute / 60.0

    @classmethod
    def for_tenant(
        cls,
        redis: AsyncRedisProtocol,
        tenant_id: int,
        requests_per_minute: int = 60,
        max_concurrent: int = 2,
    ) -> "RateLimiter":
        """Build the limiter for a tenant's Reddit budget."""
        return cls(
            redis,
            RateLimitConfig(
                bucket_id=f"reddit:{tenant_id}",
                requests_per_minute=requests_per_minute,
                max_concurrent=max_concurrent,
            ),
        )

    async def acquire_token(self) -> bool:
        """Attempt to take one token from the bucket."""
        tokens_raw = await self.redis.get(self._tokens_key)
        last_refill_raw = await self.redis.get(self._refill_key)

        now = time.time()

        if tokens_raw is None:
            tokens = float(self.config.bucket_size)
            last_refill = now
        else:
            tokens = float(tokens_raw)
            last_refill = float(last_refill_raw) if last_refill_raw else now

        elapsed = now - last_refill
        tokens = min(tokens + elapsed * self._refill_rate, self.config.bucket_size)

        if tokens >= 1:
            tokens -= 1
            pipe = self.redis.pipeline()
            pipe.set(self._tokens_key, str(tokens))
            pipe.set(self._refill_key, str(now))
            pipe.expire(self._tokens_key, 3600)
            pipe.expire(self._refill_key, 3600)
            await pipe.execute()
            return True

        return False

    async def acquire_slot(self) -> bool:
        """Attempt to take a concurrency slot."""
        count = await self.redis.incr(self._inflight_key)

        # Expiry prevents leaked slots from crashed workers
        await self.redis.expire(self._inflight_key, 300)

        if count > self.config.max_concurrent:
            await self.redis.decr(self._inflight_key)
            return False

        return True

    async def release_slot(self) -> None:
        await self.redis.decr(self._inflight_key)

    async def acquire(self, wait: bool = True, timeout: float = 10.0) -> bool:
        """Acquire both a slot and a token.

        Args:
            wait: Whether to wait for availability.
            timeout: Maximum time to wait in seconds.
        """
        start_time = time.time()
        attempt = 0
        backoff = BackoffStrategy(base_delay=0.1, max_delay=2.0)

        while True:
            attempt += 1

            if not await self.acquire_slot():
                if not wait or (time.time() - start_time) >= timeout:
                    return False
                await asyncio.sleep(backoff.get_delay(attempt))
                continue

            if await self.acquire_token():
                return True

            await self.release_slot()

            if not wait or (time.time() - start_time) >= timeout:
                return False

            await asyncio.sleep(backoff.get_delay(attempt))

    async def release(self) -> None:
        await self.release_slot()

    async def __aenter__(self) -> "RateLimiter":
        if not await self.acquire():
            raise RateLimitExceeded(
                f"Rate limit exceeded for bucket {self.config.bucket_id}"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()
