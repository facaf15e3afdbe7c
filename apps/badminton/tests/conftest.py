"""
Shared pytest configuration for badminton tests.

Uses an in-memory SQLite database (aiosqlite) per test; the models stick to
types that behave the same on SQLite and PostgreSQL.
"""

import os

# Must be set before the routes package is imported so the limiter is a no-op
os.environ.setdefault("ENV", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from badminton.database.db import Base, get_db_session
from badminton.services import data_service, rate_limiting_service

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """No Redis in tests; cooldowns start empty."""
    monkeypatch.delenv("REDIS_URL", raising=False)
    rate_limiting_service.reset_recalculation_storage()
    yield
    rate_limiting_service.reset_recalculation_storage()


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database with all tables created."""
    # StaticPool keeps a single connection so every session sees the same database
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        from badminton.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker):
    """A database session for service-level tests."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def api_client(session_maker):
    """HTTP client for the app with get_db_session bound to the test database."""
    from badminton.api.main import app

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def group_with_players(db_session):
    """A group with four players: Alice, Bob, Carol, Dave."""
    group = await data_service.create_group(db_session, "Tuesday Club", ["Alice", "Bob", "Carol", "Dave"])
    await db_session.commit()
    return group


@pytest_asyncio.fixture
async def linked_session(db_session, group_with_players):
    """A doubles group session with all four group players linked."""
    roster = [
        {"name": p["name"], "group_player_id": p["id"]}
        for p in group_with_players["players"]
    ]
    created = await data_service.create_session(
        db_session, roster, game_mode="doubles", group_id=group_with_players["id"]
    )
    await db_session.commit()
    return created
