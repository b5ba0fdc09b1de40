"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; these must exist before app modules load
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_S3_BUCKET", "test-bucket")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from collections.abc import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import (
    get_chat_store,
    get_object_store,
    get_publisher,
    get_roster_sync,
    get_session_factory,
)
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services.roster_sync import RosterSynchronizer
from tests.fakes import InMemoryChatStore, InMemoryObjectStore, RecordingPublisher


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def roster_sync(session_factory, chat_store, publisher) -> RosterSynchronizer:
    return RosterSynchronizer(session_factory, chat_store, publisher, max_attempts=2, base_delay=0)


@pytest.fixture
async def client(
    session_factory,
    chat_store,
    publisher,
    object_store,
    roster_sync,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints against the doubles above."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_chat_store] = lambda: chat_store
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_roster_sync] = lambda: roster_sync

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await roster_sync.drain()
    app.dependency_overrides.clear()
