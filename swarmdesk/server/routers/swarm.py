"""Swarm session endpoints.

Thin HTTP adapter -- delegates to the session / worker managers and the
runner.  Domain errors propagate to the app's exception handlers.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from swarmdesk.server.deps import DbSession, Owner, Runner
from swarmdesk.server.errors import ConflictError
from swarmdesk.server.execution.relay import EventRelay
from swarmdesk.server.managers import sessions as session_manager
from swarmdesk.server.managers import workers as worker_manager
from swarmdesk.server.models.api import (
    AbortResponse,
    ExecutionResponse,
    SessionDetailResponse,
    SessionList,
    SessionResponse,
    SwarmCreate,
    SwarmCreated,
    SwarmExecute,
    WorkerEnvelope,
    WorkerResponse,
    WorkerStatusUpdate,
    WorkerTokensUpdate,
    dump_json,
)
from swarmdesk.server.models.enums import SessionStatus

router = APIRouter(prefix="/swarm", tags=["swarm"])


@router.post("/create", response_model=SwarmCreated)
async def handle_create(body: SwarmCreate, db: DbSession, owner: Owner) -> SwarmCreated:
    session = await session_manager.create_session(
        db,
        owner_id=owner,
        swarm_type=body.swarm_type,
        project_name=body.project_name,
        project_path=body.project_path,
        task_description=body.task_description,
        namespace=body.namespace,
        metadata=dump_json({"agentTypes": body.agent_types}) if body.agent_types else None,
    )
    await worker_manager.create_workers_for_agent_types(db, session, body.agent_types)
    return SwarmCreated.model_validate(session)


@router.post("/execute", response_model=None)
async def handle_execute(body: SwarmExecute, db: DbSession, owner: Owner, runner: Runner) -> Response:
    prepared = await runner.prepare(
        db,
        owner_id=owner,
        session_id=body.session_id,
        task_description=body.task_description,
        swarm_type=body.swarm_type,
    )

    if body.streaming:
        relay = EventRelay()
        runner.start_background(prepared, relay.publish)
        return EventSourceResponse(relay.sse_frames(), sep="\n")

    result = await runner.run(prepared)
    if result.spawn_error is not None:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to execute swarm", "details": result.spawn_error},
        )
    payload = ExecutionResponse(
        success=result.success,
        session_id=result.session_id,
        duration=result.duration_ms,
        output=result.output,
        error=result.error,
    ).model_dump(by_alias=True)
    code = status.HTTP_200_OK if result.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=payload)


@router.get("/sessions", response_model=SessionList)
async def handle_list_sessions(
    db: DbSession,
    owner: Owner,
    project_name: str | None = Query(None, alias="projectName"),
    limit: int = Query(50, ge=1, le=500),
) -> SessionList:
    rows = await session_manager.list_sessions(db, owner, project_name=project_name, limit=limit)
    sessions = [SessionResponse.model_validate(row) for row in rows]
    return SessionList(sessions=sessions, count=len(sessions))


@router.get("/session/{session_id}", response_model=SessionDetailResponse)
async def handle_get_session(session_id: str, db: DbSession, owner: Owner) -> SessionDetailResponse:
    session = await session_manager.get_owned_session(db, session_id, owner)
    workers = [WorkerResponse.model_validate(w) for w in await worker_manager.list_workers(db, session_id)]
    return SessionDetailResponse(
        session=SessionResponse.model_validate(session),
        workers=workers,
        worker_count=len(workers),
    )


@router.post("/session/{session_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def handle_delete_session(session_id: str, db: DbSession, owner: Owner, runner: Runner) -> None:
    await session_manager.get_owned_session(db, session_id, owner)
    if runner.registry.is_running(session_id):
        msg = f"Swarm session '{session_id}' is still running"
        raise ConflictError(msg)
    await session_manager.delete_session(db, session_id)


@router.post("/abort/{session_id}", response_model=AbortResponse)
async def handle_abort(session_id: str, db: DbSession, owner: Owner, runner: Runner) -> AbortResponse:
    terminated = await runner.abort(db, owner_id=owner, session_id=session_id)
    return AbortResponse(session_id=session_id, status=SessionStatus.ABORTED, terminated=terminated)


# -- Workers -----------------------------------------------------------------


async def _owned_worker(db: AsyncSession, worker_id: str, owner: str) -> None:
    worker = await worker_manager.get_worker(db, worker_id)
    try:
        await session_manager.get_owned_session(db, worker.session_id, owner)
    except session_manager.SessionNotFoundError:
        msg = f"Worker '{worker_id}' not found"
        raise worker_manager.WorkerNotFoundError(msg) from None


@router.post("/workers/{worker_id}/status", response_model=WorkerEnvelope)
async def handle_worker_status(
    worker_id: str, body: WorkerStatusUpdate, db: DbSession, owner: Owner
) -> WorkerEnvelope:
    await _owned_worker(db, worker_id, owner)
    await worker_manager.set_worker_status(db, worker_id, body.status, result=body.result, error_message=body.error)
    worker = await worker_manager.get_worker(db, worker_id)
    return WorkerEnvelope(worker=WorkerResponse.model_validate(worker))


@router.post("/workers/{worker_id}/tokens", response_model=WorkerEnvelope)
async def handle_worker_tokens(
    worker_id: str, body: WorkerTokensUpdate, db: DbSession, owner: Owner
) -> WorkerEnvelope:
    await _owned_worker(db, worker_id, owner)
    await worker_manager.set_worker_tokens(db, worker_id, body.input_tokens, body.output_tokens)
    worker = await worker_manager.get_worker(db, worker_id)
    return WorkerEnvelope(worker=WorkerResponse.model_validate(worker))
