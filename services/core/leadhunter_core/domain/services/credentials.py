"""Credential manager for tenants' Reddit OAuth tokens.

Stores tokens encrypted, and hands out access tokens that are guaranteed
to stay valid for at least the configured safety margin. Refresh is
serialized per tenant: concurrent callers wait on the tenant's lock and
then reuse the token the first caller obtained.

Usage:
    manager = CredentialManager(
        db=session,
        crypto=CryptoService(settings.encryption_key),
        oauth_client=RedditOAuthClient(client_id, client_secret, user_agent),
        lock_provider=get_lock_provider(),
    )

    token = await manager.get_valid_token(tenant_id)
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.errors import AuthExpiredError
from leadhunter_core.domain.models import RedditConnection, utcnow
from leadhunter_core.infrastructure.crypto import CryptoService, DecryptionError
from leadhunter_core.infrastructure.locks import LockProvider, LockTimeout
from leadhunter_core.infrastructure.rate_limiter import RateLimiter
from leadhunter_core.providers.base import ProviderAdapter
from leadhunter_core.providers.reddit.adapter import RedditAdapter
from leadhunter_core.providers.reddit.oauth import OAuthError, RedditOAuthClient

logger = logging.getLogger(__name__)

# Token endpoint statuses that mean the refresh token itself was revoked
REVOKED_STATUSES = {400, 401}

# Builds a provider adapter from (tenant_id, access_token)
AdapterFactory = Callable[[int, str], ProviderAdapter]


class CredentialManager:
    """Service for storing and refreshing Reddit credentials."""

    def __init__(
        self,
        db: Session,
        crypto: CryptoService,
        oauth_client: RedditOAuthClient,
        lock_provider: LockProvider,
        refresh_margin_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        """Initialize the manager.

        Args:
            db: SQLAlchemy database session.
            crypto: CryptoService for token encryption.
            oauth_client: Client for the Reddit token endpoint.
            lock_provider: Keyed lock provider for refresh serialization.
            refresh_margin_seconds: Tokens expiring sooner than this are refreshed.
            clock: Returns the current naive UTC time.
            adapter_factory: Builds adapters for adapter_for().
        """
        self.db = db
        self.crypto = crypto
        self.oauth_client = oauth_client
        self.lock_provider = lock_provider
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)
        self.clock = clock
        self.adapter_factory = adapter_factory

    # =========================================================================
    # STORAGE
    # =========================================================================

    def get_connection(self, tenant_id: int) -> Optional[RedditConnection]:
        return (
            self.db.query(RedditConnection)
            .filter(RedditConnection.tenant_id == tenant_id)
            .first()
        )

    def store_tokens(
        self,
        tenant_id: int,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        reddit_username: Optional[str] = None,
    ) -> RedditConnection:
        """Create or replace a tenant's Reddit connection."""
        connection = self.get_connection(tenant_id)
        if connection is None:
            connection = RedditConnection(tenant_id=tenant_id)
            self.db.add(connection)

        connection.access_token_encrypted = self.crypto.encrypt(access_token)
        connection.refresh_token_encrypted = self.crypto.encrypt(refresh_token)
        connection.token_expires_at = self.clock() + timedelta(seconds=expires_in)
        connection.connected = True
        if reddit_username:
            connection.reddit_username = reddit_username

        self.db.commit()
        self.db.refresh(connection)
        return connection

    def disconnect(self, tenant_id: int) -> bool:
        connection = self.get_connection(tenant_id)
        if connection is None:
            return False
        connection.connected = False
        self.db.commit()
        return True

    # =========================================================================
    # TOKEN ACCESS
    # =========================================================================

    def is_fresh(self, connection: RedditConnection) -> bool:
        """Whether the stored token outlives the safety margin."""
        if connection.token_expires_at is None:
            return False
        return connection.token_expires_at > self.clock() + self.refresh_margin

    async def get_valid_token(self, tenant_id: int) -> str:
        """Return an access token valid for at least the safety margin.

        Raises:
            AuthExpiredError: If the tenant has no usable connection or the
                refresh fails.
        """
        connection = self._require_connection(tenant_id)
        if self.is_fresh(connection):
            return self._decrypt(connection, connection.access_token_encrypted)

        try:
            async with self.lock_provider.lock(f"tenant:{tenant_id}"):
                # Another worker may have refreshed while we waited. A
                # re-read inside the transaction that loaded the row would
                # see its REPEATABLE READ snapshot, so end it first.
                self.db.commit()
                self.db.refresh(connection)
                if not connection.connected:
                    raise AuthExpiredError(tenant_id, "Reddit connection disconnected")
                if self.is_fresh(connection):
                    logger.debug(f"Reusing token refreshed concurrently for tenant {tenant_id}")
                    return self._decrypt(connection, connection.access_token_encrypted)

                return await self._refresh(connection)
        except LockTimeout as e:
            raise AuthExpiredError(tenant_id, "refresh lock timed out") from e

    async def adapter_for(self, tenant_id: int) -> ProviderAdapter:
        """Build a provider adapter holding a valid token for the tenant.

        Raises:
            AuthExpiredError: If no valid token can be obtained.
        """
        if self.adapter_factory is None:
            raise RuntimeError("CredentialManager has no adapter_factory")
        token = await self.get_valid_token(tenant_id)
        return self.adapter_factory(tenant_id, token)

    def _require_connection(self, tenant_id: int) -> RedditConnection:
        connection = self.get_connection(tenant_id)
        if connection is None:
            raise AuthExpiredError(tenant_id, "no Reddit connection")
        if not connection.connected:
            raise AuthExpiredError(tenant_id, "Reddit connection disconnected")
        return connection

    def _decrypt(self, connection: RedditConnection, value: str) -> str:
        try:
            return self.crypto.decrypt(value)
        except DecryptionError as e:
            raise AuthExpiredError(connection.tenant_id, "stored token unreadable") from e

    async def _refresh(self, connection: RedditConnection) -> str:
        tenant_id = connection.tenant_id
        refresh_token = self._decrypt(connection, connection.refresh_token_encrypted)

        logger.info(f"Refreshing Reddit token for tenant {tenant_id}")
        try:
            tokens = await self.oauth_client.refresh_access_token(refresh_token)
        except OAuthError as e:
            logger.error(f"Failed to refresh Reddit token for tenant {tenant_id}: {e}")
            if e.status_code in REVOKED_STATUSES:
                connection.connected = False
                self.db.commit()
            raise AuthExpiredError(tenant_id, str(e)) from e

        connection.access_token_encrypted = self.crypto.encrypt(tokens.access_token)
        if tokens.refresh_token:
            connection.refresh_token_encrypted = self.crypto.encrypt(tokens.refresh_token)
        connection.token_expires_at = self.clock() + timedelta(seconds=tokens.expires_in)
        self.db.commit()

        return tokens.access_token


# =============================================================================
# FACTORIES
# =============================================================================


def reddit_adapter_factory(settings: Any, redis: Optional[Any] = None) -> AdapterFactory:
    """Return a factory building RedditAdapters from settings.

    When a Redis client is given each adapter draws from the tenant's
    rate budget bucket.
    """

    def build(tenant_id: int, access_token: str) -> ProviderAdapter:
        rate_limiter = None
        if redis is not None:
            rate_limiter = RateLimiter.for_tenant(
                redis,
                tenant_id,
                requests_per_minute=settings.provider_rate_qpm_default,
                max_concurrent=settings.provider_rate_concurrency_default,
            )
        return RedditAdapter(
            access_token=access_token,
            user_agent=settings.provider_reddit_user_agent,
            timeout=settings.provider_timeout_seconds,
            rate_limiter=rate_limiter,
        )

    return build


def get_credential_manager(
    db: Session,
    lock_provider: Optional[LockProvider] = None,
    redis: Optional[Any] = None,
) -> CredentialManager:
    """Create a CredentialManager wired from settings."""
    from leadhunter_core.config import get_settings
    from leadhunter_core.infrastructure.locks import get_lock_provider

    settings = get_settings()
    oauth_client = RedditOAuthClient(
        client_id=settings.provider_reddit_client_id or "",
        client_secret=settings.provider_reddit_client_secret or "",
        user_agent=settings.provider_reddit_user_agent,
        timeout=settings.provider_timeout_seconds,
    )
    return CredentialManager(
        db=db,
        crypto=CryptoService(settings.encryption_key),
        oauth_client=oauth_client,
        lock_provider=lock_provider or get_lock_provider(redis),
        refresh_margin_seconds=settings.token_refresh_margin_seconds,
        adapter_factory=reddit_adapter_factory(settings, redis),
    )


__all__ = [
    "AdapterFactory",
    "CredentialManager",
    "get_credential_manager",
    "reddit_adapter_factory",
]
