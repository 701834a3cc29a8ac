"""Memory store / query endpoints and the operation log."""

from __future__ import annotations

from fastapi import APIRouter, Query

from swarmdesk.server.deps import DbSession, Owner, Runner
from swarmdesk.server.execution.memory import query_memory, store_memory
from swarmdesk.server.managers import memory as memory_manager
from swarmdesk.server.models.api import (
    MemoryOperationList,
    MemoryOperationResponse,
    MemoryQueryRequest,
    MemoryQueryResponse,
    MemoryStoreRequest,
    MemoryStoreResponse,
)

router = APIRouter(prefix="/memory", tags=["memory"])


@router.post("/store", response_model=MemoryStoreResponse)
async def handle_store(body: MemoryStoreRequest, db: DbSession, owner: Owner, runner: Runner) -> MemoryStoreResponse:
    return await store_memory(runner, db, owner_id=owner, request=body)


@router.post("/query", response_model=MemoryQueryResponse)
async def handle_query(body: MemoryQueryRequest, db: DbSession, owner: Owner, runner: Runner) -> MemoryQueryResponse:
    return await query_memory(runner, db, owner_id=owner, request=body)


@router.get("/operations", response_model=MemoryOperationList)
async def handle_list_operations(
    db: DbSession,
    owner: Owner,
    namespace: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> MemoryOperationList:
    rows = await memory_manager.list_operations(db, owner, limit=limit, namespace=namespace)
    operations = [MemoryOperationResponse.model_validate(row) for row in rows]
    return MemoryOperationList(operations=operations, count=len(operations))
