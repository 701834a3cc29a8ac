"""Swarm session store.

Sessions start ``active`` and move exactly once to a terminal status
(``completed``, ``failed`` or ``aborted``).  The status update is a single
guarded ``UPDATE ... WHERE status = 'active'`` so that racing writers (the
runner finishing while a user aborts) resolve first-write-wins, and
``completed_at`` is never overwritten.
"""

from __future__ import annotations

import time
import uuid

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import SwarmSession, utcnow
from swarmdesk.server.errors import NotFoundError, ValidationError
from swarmdesk.server.models.enums import SessionStatus, SwarmType


class SessionNotFoundError(NotFoundError):
    """Raised when a swarm session is not found."""

    title = "Swarm session not found"


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value or not value.strip()]
    if missing:
        msg = f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required"
        raise ValidationError(msg)


def parse_swarm_type(value: str) -> SwarmType:
    try:
        return SwarmType(value)
    except ValueError:
        msg = f"Unknown swarm type '{value}' (expected one of: {', '.join(SwarmType)})"
        raise ValidationError(msg) from None


def derive_namespace(project_name: str) -> str:
    """``<projectName>-<epochMillis>``: the default memory namespace of a session."""
    return f"{project_name}-{int(time.time() * 1000)}"


async def create_session(
    db: AsyncSession,
    *,
    owner_id: str,
    swarm_type: str,
    project_name: str,
    project_path: str,
    task_description: str,
    metadata: str | None = None,
    namespace: str | None = None,
) -> SwarmSession:
    """Insert a new ``active`` session.

    Raises ``ValidationError`` (and writes nothing) if a required field is
    empty or the swarm type is unknown.
    """
    _require(projectName=project_name, projectPath=project_path, taskDescription=task_description)
    kind = parse_swarm_type(swarm_type)

    row = SwarmSession(
        session_id=f"swarm-{uuid.uuid4()}",
        owner_id=owner_id,
        project_name=project_name,
        project_path=project_path,
        swarm_type=kind,
        task_description=task_description,
        status=SessionStatus.ACTIVE,
        namespace=namespace or derive_namespace(project_name),
        metadata_=metadata,
    )
    db.add(row)
    await db.commit()
    await db.refresh(row)

    logger.info("Swarm session created: {} ({}, project={})", row.session_id, kind, project_name)
    return row


async def get_session(db: AsyncSession, session_id: str) -> SwarmSession:
    """Get a session by ID.  Raises ``SessionNotFoundError`` if missing."""
    stmt = select(SwarmSession).where(SwarmSession.session_id == session_id).execution_options(populate_existing=True)
    row = (await db.execute(stmt)).scalar_one_or_none()
    if row is None:
        msg = f"Swarm session '{session_id}' not found"
        raise SessionNotFoundError(msg)
    return row


async def list_sessions(
    db: AsyncSession,
    owner_id: str,
    *,
    project_name: str | None = None,
    limit: int = 50,
) -> list[SwarmSession]:
    """List an owner's sessions, newest first."""
    stmt = select(SwarmSession).where(SwarmSession.owner_id == owner_id)
    if project_name:
        stmt = stmt.where(SwarmSession.project_name == project_name)
    stmt = stmt.order_by(SwarmSession.created_at.desc()).limit(limit)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def set_session_status(
    db: AsyncSession,
    session_id: str,
    status: SessionStatus,
    error_message: str | None = None,
) -> int:
    """Move an ``active`` session to *status*.

    Sets ``completed_at`` iff *status* is terminal.  Returns the number of
    rows affected: ``0`` means the session does not exist or already reached
    a terminal status (which is then left untouched).
    """
    status = SessionStatus(status)
    values: dict = {"status": status, "error_message": error_message}
    if status.is_terminal:
        values["completed_at"] = utcnow()

    stmt = (
        update(SwarmSession)
        .where(SwarmSession.session_id == session_id, SwarmSession.status == SessionStatus.ACTIVE)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()

    count = result.rowcount  # type: ignore[attr-defined]
    if count:
        logger.info("Swarm session {} -> {}", session_id, status)
    else:
        logger.debug("Swarm session {}: status {} not applied (missing or terminal)", session_id, status)
    return count


async def delete_session(db: AsyncSession, session_id: str) -> None:
    """Delete a session; its workers cascade, memory operations are unlinked."""
    row = await get_session(db, session_id)
    await db.delete(row)
    await db.commit()
    logger.info("Swarm session deleted: {}", session_id)


async def get_owned_session(db: AsyncSession, session_id: str, owner_id: str) -> SwarmSession:
    """Like :func:`get_session`, but sessions of other owners are reported as missing."""
    row = await get_session(db, session_id)
    if row.owner_id != owner_id:
        msg = f"Swarm session '{session_id}' not found"
        raise SessionNotFoundError(msg)
    return row
