"""Infrastructure components for LeadHunter.

This package contains infrastructure-level components:
- Token encryption
- Per-tenant locks
- Per-tenant rate limiting
"""

from leadhunter_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)
from leadhunter_core.infrastructure.locks import (
    LocalLockProvider,
    LockProvider,
    LockTimeout,
    RedisLockProvider,
)
from leadhunter_core.infrastructure.rate_limiter import (
    BackoffStrategy,
    RateLimiter,
    RateLimitConfig,
    RateLimitExceeded,
)

__all__ = [
    "BackoffStrategy",
    "CryptoService",
    "DecryptionError",
    "InvalidKeyError",
    "LocalLockProvider",
    "LockProvider",
    "LockTimeout",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitExceeded",
    "RedisLockProvider",
]
