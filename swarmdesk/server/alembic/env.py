"""Alembic migration environment.

The database URL comes from ``config.attributes["database_url"]`` when the
config is built by :func:`swarmdesk.server.db.migrate.alembic_config`, and
from SwarmSettings (SWARMDESK_DATABASE_URL) otherwise.  Migrations run
synchronously through :func:`~swarmdesk.server.db.migrate.sync_url`.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from swarmdesk.server.db.migrate import sync_url
from swarmdesk.server.db.tables import Base
from swarmdesk.server.settings import get_settings

# -- Alembic Config object ----------------------------------------------------
config = context.config
if config.config_file_name is not None and config.attributes.get("configure_logging", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# -- Target metadata for autogenerate ----------------------------------------
target_metadata = Base.metadata


def get_url() -> str:
    """Return the database URL with a synchronous driver."""
    return sync_url(config.attributes.get("database_url") or get_settings().database_url)


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    """Filter objects for autogenerate.

    Excludes tables that exist in the database but are not defined in our
    models, preventing Alembic from generating DROP TABLE for foreign tables.
    """
    return not (type_ == "table" and reflected and compare_to is None)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Generates SQL scripts without connecting to the database.
    """
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Connects to the database and applies migrations directly.
    """
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
