"""
Pytest configuration and fixtures for Orderline tests.
"""

import itertools
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from orderline.main import app
from orderline.database import get_session, get_storage_engine, init_storage
from orderline.models.task import RepeatType, Task, TaskStatus
from orderline.services.storage import MemoryBackend


# In-memory databases, one per test
TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_STORAGE_URL = "sqlite://"

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 18)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def session_factory(test_engine):
    """Committing session context manager, as used outside FastAPI."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def factory():
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return factory


@pytest.fixture
def storage_engine():
    """Sync engine for profile storage."""
    engine = create_engine(
        TEST_STORAGE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_storage(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def memory_backend():
    """Shared storage that several MemoryStorage contexts (tabs) can open."""
    return MemoryBackend()


@pytest.fixture
def make_task():
    """Build tasks with sensible defaults; order follows creation order."""
    counter = itertools.count(1)

    def _make(status: TaskStatus = TaskStatus.ACTIVE, **overrides) -> Task:
        n = next(counter)
        fields = {
            "id": f"task_{n}",
            "title": f"Task {n}",
            "status": status,
            "repeat_type": RepeatType.NONE,
            "scheduled_date": TODAY,
            "created_at": NOW,
            "order": float(n),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest_asyncio.fixture(scope="function")
async def client(test_engine, storage_engine):
    """Create an async test client with test databases."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_session():
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_storage_engine] = lambda: storage_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
