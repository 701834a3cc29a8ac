"""Service configuration loaded from SWARMDESK_* environment variables."""

from __future__ import annotations

import secrets

from pydantic_settings import BaseSettings, SettingsConfigDict


class SwarmSettings(BaseSettings):
    """SwarmDesk server settings.

    All fields are read from environment variables with the ``SWARMDESK_``
    prefix.  For example, ``SWARMDESK_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Per-owner CLI credentials are **not** managed here -- they are looked up
    on every execution by the credential provider (see
    ``execution/credentials.py``) so that rotating a key never requires a
    restart.
    """

    model_config = SettingsConfigDict(
        env_prefix="SWARMDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log line instead of colored text."""

    # -- Infrastructure --------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./data/swarmdesk.db"
    """SQLAlchemy async URL.  SQLite (aiosqlite) by default; PostgreSQL via
    ``postgresql+psycopg://`` is also supported."""

    # -- Auth ------------------------------------------------------------------
    auth_token: str | None = None
    """Bearer token for API access.  Auto-generated at startup if empty."""

    auth_owner: str = "default"
    """Owner id that ``auth_token`` authenticates as."""

    api_tokens: dict[str, str] = {}
    """Additional ``token -> owner`` mapping (JSON in the environment)."""

    # -- External CLI ----------------------------------------------------------
    cli_executable: str = "npx"
    cli_name: str = "claude-flow@alpha"
    """First argument passed to ``cli_executable``; with npx this is the package."""

    credential_env_var: str = "ANTHROPIC_API_KEY"
    """Environment variable the owner's credential is injected into."""

    hive_mind_flag: str = "--hive-mind"

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8000
    graceful_shutdown_timeout: int = 600
    """Seconds to wait for running swarm processes during shutdown.

    After this timeout, remaining processes are terminated and their
    sessions end up ``failed``.
    """

    ui_dir: str = "ui/dist"

    # -- Helpers ---------------------------------------------------------------

    def resolve_auth_token(self) -> str:
        """Return the configured token or generate a random one."""
        if self.auth_token:
            return self.auth_token
        return secrets.token_urlsafe(32)

    def cli_command(self) -> list[str]:
        """Executable plus CLI name, the fixed prefix of every invocation."""
        return [self.cli_executable, self.cli_name]


def get_settings() -> SwarmSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> SwarmSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return SwarmSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
