"""Pytest configuration and fixtures for LeadHunter Core tests.

This module provides fixtures for:
- Database: SQLite in-memory engine and sessions
- HTTP client: AsyncClient for FastAPI testing
- Fakes: provider adapter, inference client and credential manager
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from leadhunter_core.config import Settings
from leadhunter_core.domain.models import Base
from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.infrastructure.crypto import CryptoService
from leadhunter_core.infrastructure.locks import LocalLockProvider

from fakes import FakeAdapter, FakeInferenceClient


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        encryption_key=CryptoService.generate_key(),
        provider_reddit_client_id="test_client_id",
        provider_reddit_client_secret="test_client_secret",
        inference_url="http://inference.test",
    )


@pytest.fixture
def crypto(test_settings) -> CryptoService:
    return CryptoService(test_settings.encryption_key)


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only supports autoincrement on INTEGER PRIMARY KEY, so compile
    # BigInteger as INTEGER while the tables are created
    from sqlalchemy.dialects import sqlite
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Fakes for External Services
# -----------------------------------------------------------------------------


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def fake_inference() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def mock_oauth_client() -> MagicMock:
    """Token endpoint client whose refresh must be configured per test."""
    client = MagicMock()
    client.refresh_access_token = AsyncMock()
    return client


@pytest.fixture
def credential_manager(db_session, crypto, mock_oauth_client, fake_adapter) -> CredentialManager:
    """Credential manager with an in-process lock handing out the fake adapter."""
    return CredentialManager(
        db=db_session,
        crypto=crypto,
        oauth_client=mock_oauth_client,
        lock_provider=LocalLockProvider(),
        adapter_factory=lambda tenant_id, token: fake_adapter,
    )


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(
    test_settings, sync_engine, sync_session_factory, crypto, fake_adapter, fake_inference
) -> FastAPI:
    """Create a FastAPI test application with the test database and fakes."""
    from leadhunter_core.api.deps import (
        DBSession,
        get_celery_app,
        get_credentials,
        get_db,
        get_inference,
    )
    from leadhunter_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def override_get_credentials(db: DBSession):
        return CredentialManager(
            db=db,
            crypto=crypto,
            oauth_client=MagicMock(),
            lock_provider=LocalLockProvider(),
            adapter_factory=lambda tenant_id, token: fake_adapter,
        )

    celery_app = MagicMock()
    celery_app.send_task.return_value = MagicMock(id="task-123")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credentials] = override_get_credentials
    app.dependency_overrides[get_celery_app] = lambda: celery_app
    app.dependency_overrides[get_inference] = lambda: fake_inference
    app.state.test_celery = celery_app

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    The db_session fixture is included so the schema exists before the
    client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
