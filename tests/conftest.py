"""
Shared test fixtures for the CampusClock test suite.

Every test gets its own in-memory SQLite database (aiosqlite + StaticPool) and
a fixed, adjustable clock in the campus timezone.
"""

import os
import sys
from datetime import datetime
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RECONCILER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from campusclock.api.v1.deps import get_db, get_now
from campusclock.db.base import Base
from campusclock.main import app
from helpers import Campus, FixedClock, at, seed_campus


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    """Monday 08:00 campus time; tests move it with ``clock.set(h, m)``."""
    return FixedClock(at(8, 0))


@pytest.fixture
async def async_client(session_factory, clock) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app, the test database and the clock."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    def _override_get_now() -> datetime:
        return clock.now

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_now] = _override_get_now

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def campus(session_factory) -> Campus:
    async with session_factory() as session:
        return await seed_campus(session)
