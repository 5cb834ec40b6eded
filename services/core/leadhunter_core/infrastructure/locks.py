"""Per-tenant mutual exclusion for credential refresh.

Two providers share one interface: ``async with provider.lock(key):``.

- RedisLockProvider: distributed lock, used by the API and Celery workers
  so only one process refreshes a tenant's token at a time.
- LocalLockProvider: asyncio locks owned by the provider instance, used in
  tests and single-process tools.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    """Raised when a lock could not be acquired in time."""

    pass


class LockProvider(Protocol):
    """Protocol for keyed async locks."""

    def lock(self, key: str) -> Any: ...


class LocalLockProvider:
    """In-process keyed locks.

    Each instance owns its lock table, so there is no process-wide state.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield


class RedisLockProvider:
    """Distributed keyed locks backed by ``redis.asyncio``.

    Args:
        redis: ``redis.asyncio.Redis`` client.
        timeout: Lock TTL in seconds (released automatically if the holder dies).
        blocking_timeout: Max seconds to wait for the lock.
        prefix: Key prefix.
    """

    def __init__(
        self,
        redis: Any,
        timeout: float = 30.0,
        blocking_timeout: Optional[float] = 30.0,
        prefix: str = "lock:",
    ) -> None:
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.prefix = prefix

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self.prefix}{key}",
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise LockTimeout(f"Could not acquire lock {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except Exception as e:
                # Lock expired before release; the refresh already finished.
                logger.warning(f"Failed to release lock {key}: {e}")


def get_lock_provider(redis: Optional[Any] = None) -> RedisLockProvider:
    """Create a Redis lock provider from settings, reusing ``redis`` if given."""
    from redis.asyncio import Redis

    from leadhunter_core.config import get_settings

    settings = get_settings()
    return RedisLockProvider(
        redis if redis is not None else Redis.from_url(settings.redis_url),
        timeout=settings.token_refresh_lock_timeout_seconds,
        blocking_timeout=settings.token_refresh_lock_timeout_seconds,
        prefix="lock:reddit-token:",
    )


__all__ = [
    "LocalLockProvider",
    "LockProvider",
    "LockTimeout",
    "RedisLockProvider",
    "get_lock_provider",
]
