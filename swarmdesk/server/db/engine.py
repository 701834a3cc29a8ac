"""Async SQLAlchemy engine and session factory.

SQLite (aiosqlite) is the default backend; PostgreSQL via psycopg3 works with
the same code using a ``postgresql+psycopg://`` URL.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    # SQLite ignores FOREIGN KEY clauses (cascade / set null) unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    For server databases the pool is tuned for a small single-host service:

    - **pool_size=5**: baseline connections kept open.
    - **max_overflow=10**: burst capacity above pool_size.
    - **pool_pre_ping=True**: test connections before checkout to handle
      server-side disconnects.
    - **pool_recycle=3600**: recycle connections after 1 hour.

    SQLite gets foreign-key enforcement switched on for every connection.
    All defaults can be overridden via *kwargs*.
    """
    url = make_url(database_url)
    defaults: dict[str, object] = {"echo": False}
    if url.get_backend_name() != "sqlite":
        defaults.update({
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        })
    defaults.update(kwargs)
    engine = create_async_engine(url, **defaults)  # type: ignore[arg-type]

    if url.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    ``expire_on_commit=False`` so that ORM instances remain usable after
    commit without triggering lazy loads (important for async code where
    implicit IO is forbidden).
    """
    return async_sessionmaker(engine, expire_on_commit=False)
