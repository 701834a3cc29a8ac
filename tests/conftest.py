"""Shared test fixtures.

Unit and API tests run against a fresh SQLite file per test (aiosqlite,
schema from ``Base.metadata.create_all``).

Integration tests use a real PostgreSQL container managed by
testcontainers-python, with the schema built by the Alembic migrations.
The container is session-scoped (started once per test run) and each test
gets an isolated DB session (via savepoint rollback).  Tests needing the
container are marked with ``@pytest.mark.integration`` and are skipped when
Docker is not available.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from swarmdesk.server.db.engine import create_engine, create_session_factory
from swarmdesk.server.db.migrate import upgrade_database
from swarmdesk.server.db.tables import Base
from swarmdesk.server.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Function-scoped: SQLite database per test
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async engine on a throwaway SQLite file with the full schema."""
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'swarmdesk.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Session-scoped: PostgreSQL container (started once, shared across all tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container() -> Iterator[object]:
    """Start a PostgreSQL 17 container for the test session."""
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="swarmdesk_test",
        driver="psycopg",
    )
    try:
        container.start()
    except Exception as exc:  # Docker daemon missing or unreachable
        pytest.skip(f"PostgreSQL container unavailable: {exc}")
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def pg_url(pg_container: object) -> str:
    """PostgreSQL URL (psycopg3 dialect) with Alembic migrations applied."""
    url = pg_container.get_connection_url()  # type: ignore[attr-defined]
    _set_env("SWARMDESK_DATABASE_URL", url)

    # Same entry point as `swarmdesk db upgrade`.
    upgrade_database(url)

    return url


@pytest.fixture(scope="session")
def pg_engine(pg_url: str) -> Iterator[AsyncEngine]:
    """Session-scoped async SQLAlchemy engine."""
    eng = create_async_engine(pg_url, poolclass=NullPool)
    yield eng
    eng.sync_engine.dispose()


@pytest.fixture
async def pg_session(pg_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLAlchemy session; all changes rolled back after the test.

    Uses ``join_transaction_mode="create_savepoint"`` so that session.commit()
    inside tested code only commits a savepoint, while the outer transaction
    is rolled back at teardown -- giving each test a clean database state.
    """
    async with pg_engine.connect() as conn:
        await conn.begin()
        session = AsyncSession(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
        yield session
        await session.close()
        await conn.rollback()
