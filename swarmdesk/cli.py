import click


@click.group()
def main() -> None:
    """SwarmDesk - track and run claude-flow swarms from a web backend."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from SWARMDESK_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from SWARMDESK_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the SwarmDesk server."""
    import uvicorn

    from swarmdesk.server.settings import SwarmSettings

    settings = SwarmSettings()

    uvicorn.run(
        "swarmdesk.server.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Drain timeout plus a buffer for terminating stragglers and recording their outcome.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 60,
    )


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


@main.group()
@click.option(
    "--database-url",
    default=None,
    help="SQLAlchemy URL to migrate (default: from SWARMDESK_DATABASE_URL).",
)
@click.pass_context
def db(ctx: click.Context, database_url: str | None) -> None:
    """Database migration and management commands."""
    from swarmdesk.server.db.migrate import alembic_config

    ctx.obj = alembic_config(database_url)


def _shown_url(config) -> str:
    from sqlalchemy.engine import make_url

    return make_url(config.attributes["database_url"]).render_as_string(hide_password=True)


@db.command()
@click.option("--revision", default="head", help="Target revision (default: head).")
@click.pass_obj
def upgrade(config, revision: str) -> None:
    """Run database migrations forward, creating a SQLite database's directory."""
    from swarmdesk.server.db.migrate import upgrade_database

    upgrade_database(config.attributes["database_url"], revision)
    click.echo(f"Database {_shown_url(config)} upgraded to {revision}.")


@db.command()
@click.option("--revision", default="-1", help="Target revision (default: -1, one step back).")
@click.pass_obj
def downgrade(config, revision: str) -> None:
    """Roll back database migrations."""
    from alembic import command

    command.downgrade(config, revision)
    click.echo(f"Database {_shown_url(config)} downgraded to {revision}.")


@db.command()
@click.argument("revision")
@click.pass_obj
def stamp(config, revision: str) -> None:
    """Record REVISION as applied without running any migration."""
    from alembic import command

    command.stamp(config, revision)
    click.echo(f"Database {_shown_url(config)} stamped at {revision}.")


@db.command()
@click.argument("message")
@click.pass_obj
def migrate(config, message: str) -> None:
    """Autogenerate a new migration from model changes."""
    from alembic import command

    command.revision(config, message=message, autogenerate=True)
    click.echo(f"Migration generated: {message}")


@db.command()
@click.pass_obj
def current(config) -> None:
    """Show current database revision."""
    from alembic import command

    command.current(config, verbose=True)


@db.command()
@click.pass_obj
def history(config) -> None:
    """Show migration history."""
    from alembic import command

    command.history(config, verbose=True)
