"""Alembic entry points shared by the ``swarmdesk db`` commands and startup.

Alembic runs synchronously, so async drivers are swapped for their sync
counterparts (aiosqlite -> pysqlite, asyncpg -> psycopg3) before it
connects.
"""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from loguru import logger
from sqlalchemy import create_engine, inspect, pool
from sqlalchemy.engine import make_url

from swarmdesk.server.settings import get_settings

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"

# Revision whose schema matches a database built by ``Base.metadata.create_all``
# before migrations ran at startup.
UNVERSIONED_BASELINE = "0001"

_SYNC_DRIVERS = {
    "sqlite+aiosqlite": "sqlite",
    "postgresql+asyncpg": "postgresql+psycopg",
}


def sync_url(database_url: str) -> str:
    """*database_url* with a synchronous driver, password included."""
    url = make_url(database_url)
    sync = _SYNC_DRIVERS.get(url.drivername)
    if sync is not None:
        url = url.set(drivername=sync)
    return url.render_as_string(hide_password=False)


def alembic_config(database_url: str | None = None, *, configure_logging: bool = True) -> Config:
    """Build an Alembic Config from the package's alembic.ini.

    *database_url* defaults to ``SWARMDESK_DATABASE_URL``.  It travels in
    ``config.attributes`` rather than the ini so ``%`` in passwords needs no
    escaping.  ``configure_logging=False`` keeps alembic.ini's logging
    sections from replacing the running server's handlers.
    """
    config = Config(str(ALEMBIC_INI))
    config.attributes["database_url"] = database_url or get_settings().database_url
    config.attributes["configure_logging"] = configure_logging
    return config


def ensure_sqlite_directory(database_url: str) -> Path | None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    parent = Path(url.database).expanduser().parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def _table_names(database_url: str) -> set[str]:
    engine = create_engine(sync_url(database_url), poolclass=pool.NullPool)
    try:
        with engine.connect() as conn:
            return set(inspect(conn).get_table_names())
    finally:
        engine.dispose()


def upgrade_database(
    database_url: str | None = None, revision: str = "head", *, configure_logging: bool = True
) -> None:
    """Migrate the database to *revision*, creating the SQLite directory first.

    A database that already holds the schema but has never been versioned is
    stamped at the initial revision before upgrading.
    """
    config = alembic_config(database_url, configure_logging=configure_logging)
    url = config.attributes["database_url"]
    ensure_sqlite_directory(url)

    tables = _table_names(url)
    if "alembic_version" not in tables and "swarm_sessions" in tables:
        logger.warning("Database has tables but no migration history, stamping {}", UNVERSIONED_BASELINE)
        command.stamp(config, UNVERSIONED_BASELINE)

    command.upgrade(config, revision)
