"""Fixtures for runner and API tests: fake spawner, static credentials, wired app."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sse_starlette.sse import AppStatus

from swarmdesk.server.app import app
from swarmdesk.server.execution.credentials import StaticCredentialProvider
from swarmdesk.server.execution.runner import SwarmRunner
from swarmdesk.server.execution.spawner import FakeSpawner
from swarmdesk.server.registry import ProcessRegistry
from swarmdesk.server.settings import SwarmSettings

ALICE = {"Authorization": "Bearer alice-token"}


@pytest.fixture
def settings() -> SwarmSettings:
    return SwarmSettings(_env_file=None)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider({"alice": "sk-alice"})


@pytest.fixture
def registry() -> ProcessRegistry:
    return ProcessRegistry()


@pytest.fixture
def runner(
    settings: SwarmSettings,
    session_factory: async_sessionmaker[AsyncSession],
    spawner: FakeSpawner,
    credentials: StaticCredentialProvider,
    registry: ProcessRegistry,
) -> SwarmRunner:
    return SwarmRunner(
        settings=settings,
        session_factory=session_factory,
        spawner=spawner,
        credentials=credentials,
        registry=registry,
    )


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    runner: SwarmRunner,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client authenticated as ``alice``.

    The app lifespan does NOT run under ``ASGITransport``, so state fields
    are set here: the per-test SQLite factory, a runner with a fake spawner,
    and two bearer tokens (``alice-token``, ``bob-token``).
    """
    # sse-starlette keeps a module-level exit event bound to the first loop.
    monkeypatch.setattr(AppStatus, "should_exit_event", None, raising=False)
    monkeypatch.setattr(AppStatus, "should_exit", False, raising=False)

    app.state.db_session_factory = session_factory
    app.state.runner = runner
    app.state.auth_tokens = {"alice-token": "alice", "bob-token": "bob"}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=ALICE) as ac:
        yield ac

    await runner.drain()
    app.state.db_session_factory = None
    app.state.runner = None
    app.state.auth_tokens = {}
