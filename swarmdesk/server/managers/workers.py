"""Swarm worker store.

Workers move ``pending -> active -> {completed, failed}``.  ``started_at``
is written on the first transition into ``active`` only (``COALESCE``), and
terminal workers are never updated again.  ``total_tokens`` is always
recomputed from its two parts.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.catalog import display_name
from swarmdesk.server.db.tables import SwarmSession, SwarmWorker, utcnow
from swarmdesk.server.errors import NotFoundError, ValidationError
from swarmdesk.server.managers.sessions import SessionNotFoundError
from swarmdesk.server.models.enums import TERMINAL_WORKER_STATUSES, WorkerStatus


class WorkerNotFoundError(NotFoundError):
    """Raised when a worker is not found."""

    title = "Worker not found"


def _status_values(status: WorkerStatus) -> dict:
    now = utcnow()
    values: dict = {"status": status}
    if status == WorkerStatus.ACTIVE:
        values["started_at"] = func.coalesce(SwarmWorker.started_at, now)
    if status in TERMINAL_WORKER_STATUSES:
        values["completed_at"] = now
    return values


async def create_worker(
    db: AsyncSession,
    *,
    session_id: str,
    agent_type: str,
    task: str,
    agent_name: str | None = None,
    worker_id: str | None = None,
    metadata: str | None = None,
) -> SwarmWorker:
    """Attach a ``pending`` worker to a session.

    Raises ``SessionNotFoundError`` if the session does not exist.
    """
    if await db.get(SwarmSession, session_id) is None:
        msg = f"Swarm session '{session_id}' not found"
        raise SessionNotFoundError(msg)

    worker = SwarmWorker(
        session_id=session_id,
        worker_id=worker_id or f"worker-{uuid.uuid4().hex}",
        agent_type=agent_type,
        agent_name=agent_name or display_name(agent_type),
        task=task,
        status=WorkerStatus.PENDING,
        metadata_=metadata,
    )
    db.add(worker)
    await db.commit()
    await db.refresh(worker)
    return worker


async def create_workers_for_agent_types(
    db: AsyncSession,
    session: SwarmSession,
    agent_types: Sequence[str],
) -> list[SwarmWorker]:
    """One pending worker per requested agent type, all sharing the session task."""
    workers = [
        SwarmWorker(
            session_id=session.session_id,
            worker_id=f"worker-{uuid.uuid4().hex}",
            agent_type=agent_type,
            agent_name=display_name(agent_type),
            task=session.task_description,
            status=WorkerStatus.PENDING,
        )
        for agent_type in agent_types
    ]
    if not workers:
        return []
    db.add_all(workers)
    await db.commit()
    logger.debug("Session {}: created {} workers", session.session_id, len(workers))
    return workers


async def get_worker(db: AsyncSession, worker_id: str) -> SwarmWorker:
    """Get a worker by ID.  Raises ``WorkerNotFoundError`` if missing."""
    stmt = select(SwarmWorker).where(SwarmWorker.worker_id == worker_id).execution_options(populate_existing=True)
    worker = (await db.execute(stmt)).scalar_one_or_none()
    if worker is None:
        msg = f"Worker '{worker_id}' not found"
        raise WorkerNotFoundError(msg)
    return worker


async def list_workers(db: AsyncSession, session_id: str) -> list[SwarmWorker]:
    """List a session's workers in creation order."""
    stmt = (
        select(SwarmWorker)
        .where(SwarmWorker.session_id == session_id)
        .order_by(SwarmWorker.id.asc())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_worker_status(
    db: AsyncSession,
    worker_id: str,
    status: WorkerStatus,
    *,
    result: str | None = None,
    error_message: str | None = None,
) -> bool:
    """Transition a non-terminal worker.  Returns ``False`` if nothing changed."""
    status = WorkerStatus(status)
    if status == WorkerStatus.PENDING:
        msg = "Workers cannot move back to 'pending'"
        raise ValidationError(msg)

    values = _status_values(status)
    if result is not None:
        values["result"] = result
    if error_message is not None:
        values["error_message"] = error_message

    stmt = (
        update(SwarmWorker)
        .where(SwarmWorker.worker_id == worker_id, SwarmWorker.status.not_in(TERMINAL_WORKER_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.commit()
    return res.rowcount > 0  # type: ignore[attr-defined]


async def set_worker_tokens(db: AsyncSession, worker_id: str, input_tokens: int, output_tokens: int) -> bool:
    """Record token usage; ``total_tokens`` is always ``input + output``."""
    if input_tokens < 0 or output_tokens < 0:
        msg = "Token counts must be non-negative"
        raise ValidationError(msg)

    stmt = (
        update(SwarmWorker)
        .where(SwarmWorker.worker_id == worker_id)
        .values(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=input_tokens + output_tokens)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.commit()
    return res.rowcount > 0  # type: ignore[attr-defined]


async def transition_session_workers(
    db: AsyncSession,
    session_id: str,
    status: WorkerStatus,
    *,
    error_message: str | None = None,
) -> int:
    """Move every non-terminal worker of a session to *status* in one statement."""
    values = _status_values(WorkerStatus(status))
    if error_message is not None:
        values["error_message"] = error_message

    stmt = (
        update(SwarmWorker)
        .where(SwarmWorker.session_id == session_id, SwarmWorker.status.not_in(TERMINAL_WORKER_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.commit()
    return res.rowcount  # type: ignore[attr-defined]
