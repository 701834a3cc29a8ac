"""Tests for the swarm session store."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import SwarmSession
from swarmdesk.server.errors import ValidationError
from swarmdesk.server.managers import sessions as session_manager
from swarmdesk.server.managers.sessions import SessionNotFoundError
from swarmdesk.server.models.enums import SessionStatus, SwarmType


async def _create(db: AsyncSession, **overrides: str) -> SwarmSession:
    fields = {
        "owner_id": "alice",
        "swarm_type": "quick",
        "project_name": "demo",
        "project_path": "/tmp/demo",
        "task_description": "Fix the login bug",
    }
    fields.update(overrides)
    return await session_manager.create_session(db, **fields)


async def test_create_session_starts_active(db_session: AsyncSession) -> None:
    row = await _create(db_session)

    assert row.session_id.startswith("swarm-")
    assert row.status == SessionStatus.ACTIVE
    assert row.swarm_type == SwarmType.QUICK
    assert row.completed_at is None
    assert row.created_at is not None


async def test_create_then_get_round_trip(db_session: AsyncSession) -> None:
    row = await _create(db_session, swarm_type="hive-mind", metadata='{"agentTypes": ["debugger"]}')
    fetched = await session_manager.get_session(db_session, row.session_id)

    assert fetched.project_name == "demo"
    assert fetched.project_path == "/tmp/demo"
    assert fetched.task_description == "Fix the login bug"
    assert fetched.swarm_type == "hive-mind"
    assert fetched.metadata_ == '{"agentTypes": ["debugger"]}'


async def test_namespace_derived_from_project_name(db_session: AsyncSession) -> None:
    row = await _create(db_session)
    prefix, _, millis = row.namespace.rpartition("-")
    assert prefix == "demo"
    assert millis.isdigit()


async def test_explicit_namespace_is_kept(db_session: AsyncSession) -> None:
    row = await _create(db_session, namespace="shared")
    assert row.namespace == "shared"


@pytest.mark.parametrize("field", ["project_name", "project_path", "task_description"])
async def test_empty_required_field_writes_nothing(db_session: AsyncSession, field: str) -> None:
    with pytest.raises(ValidationError):
        await _create(db_session, **{field: ""})

    count = (await db_session.execute(select(func.count()).select_from(SwarmSession))).scalar_one()
    assert count == 0


async def test_unknown_swarm_type_rejected(db_session: AsyncSession) -> None:
    with pytest.raises(ValidationError, match="Unknown swarm type"):
        await _create(db_session, swarm_type="mega")


async def test_get_missing_session(db_session: AsyncSession) -> None:
    with pytest.raises(SessionNotFoundError):
        await session_manager.get_session(db_session, "swarm-missing")


async def test_get_owned_session_hides_other_owners(db_session: AsyncSession) -> None:
    row = await _create(db_session)
    with pytest.raises(SessionNotFoundError):
        await session_manager.get_owned_session(db_session, row.session_id, "bob")
    assert (await session_manager.get_owned_session(db_session, row.session_id, "alice")) is not None


async def test_list_sessions_newest_first_and_filtered(db_session: AsyncSession) -> None:
    first = await _create(db_session, project_name="alpha")
    second = await _create(db_session, project_name="beta")
    third = await _create(db_session, project_name="alpha")
    await _create(db_session, owner_id="bob")

    rows = await session_manager.list_sessions(db_session, "alice")
    assert [r.session_id for r in rows] == [third.session_id, second.session_id, first.session_id]

    alpha = await session_manager.list_sessions(db_session, "alice", project_name="alpha")
    assert [r.session_id for r in alpha] == [third.session_id, first.session_id]

    limited = await session_manager.list_sessions(db_session, "alice", limit=1)
    assert [r.session_id for r in limited] == [third.session_id]


async def test_terminal_status_sets_completed_at(db_session: AsyncSession) -> None:
    row = await _create(db_session)

    assert await session_manager.set_session_status(db_session, row.session_id, SessionStatus.COMPLETED) == 1
    done = await session_manager.get_session(db_session, row.session_id)

    assert done.status == SessionStatus.COMPLETED
    assert done.completed_at is not None
    assert done.completed_at >= done.created_at


async def test_failed_status_records_error(db_session: AsyncSession) -> None:
    row = await _create(db_session)
    await session_manager.set_session_status(db_session, row.session_id, SessionStatus.FAILED, "boom")
    failed = await session_manager.get_session(db_session, row.session_id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "boom"


async def test_second_terminal_write_is_ignored(db_session: AsyncSession) -> None:
    row = await _create(db_session)
    await session_manager.set_session_status(db_session, row.session_id, SessionStatus.ABORTED)
    first = await session_manager.get_session(db_session, row.session_id)
    stamp = first.completed_at

    assert await session_manager.set_session_status(db_session, row.session_id, SessionStatus.COMPLETED) == 0

    again = await session_manager.get_session(db_session, row.session_id)
    assert again.status == SessionStatus.ABORTED
    assert again.completed_at == stamp


async def test_set_status_on_missing_session(db_session: AsyncSession) -> None:
    assert await session_manager.set_session_status(db_session, "swarm-missing", SessionStatus.FAILED) == 0


async def test_delete_session(db_session: AsyncSession) -> None:
    row = await _create(db_session)
    await session_manager.delete_session(db_session, row.session_id)
    with pytest.raises(SessionNotFoundError):
        await session_manager.get_session(db_session, row.session_id)
