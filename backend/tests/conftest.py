"""Shared fixtures for the key pool test suite."""

import os

from cryptography.fernet import Fernet

# Must be set before aiverse.core.config is imported
os.environ.setdefault("MASTER_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import aiverse.models.database  # noqa: F401
from aiverse.core.config import settings
from aiverse.core.keys.store import KeyStore
from aiverse.core.security.encryption import KeyEncryptionService
from aiverse.core.storage.database import Base
from aiverse.services.event_bus import EventBus

TEST_ADMIN_SECRET = "test-admin-secret"


@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(engine):
    """Database session bound to the test engine."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def encryption_service():
    return KeyEncryptionService(master_key=Fernet.generate_key().decode())


@pytest.fixture
def store(db_session, encryption_service):
    return KeyStore(db_session, encryption_service)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def admin_headers(monkeypatch):
    """Configure an admin secret and return headers that carry it."""
    monkeypatch.setattr(settings, "admin_secret", TEST_ADMIN_SECRET)
    return {"X-Admin-Secret": TEST_ADMIN_SECRET}
