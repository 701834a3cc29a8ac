"""Memory store / query through the external CLI.

Each call runs ``<cli> memory <command> ...`` with ``MEMORY_NAMESPACE`` set,
then appends exactly one entry to the memory operation log, successful or
not.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from swarmdesk.server.errors import ProcessError, ValidationError
from swarmdesk.server.execution.spawner import SpawnError
from swarmdesk.server.managers import memory as memory_manager
from swarmdesk.server.managers import sessions as session_manager
from swarmdesk.server.models.api import (
    MemoryQueryRequest,
    MemoryQueryResponse,
    MemoryStoreRequest,
    MemoryStoreResponse,
)
from swarmdesk.server.models.enums import MemoryOperationType

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swarmdesk.server.execution.runner import CliResult, SwarmRunner

logger = logging.getLogger(__name__)

_QUERY_COMMANDS = {
    MemoryOperationType.QUERY: "query",
    MemoryOperationType.VECTOR_SEARCH: "vector-search",
}


class MemoryStoreError(ProcessError):
    title = "Failed to store memory"


class MemoryQueryError(ProcessError):
    title = "Failed to query memory"


def parse_results(stdout: str) -> tuple[Any, int]:
    """JSON output is decoded (a list counts its items); plain text is one result."""
    if not stdout.strip():
        return [], 0
    try:
        results = json.loads(stdout)
    except json.JSONDecodeError:
        return stdout, 1
    return results, len(results) if isinstance(results, list) else 1


def _require(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        msg = f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required"
        raise ValidationError(msg)


async def _invoke(
    runner: SwarmRunner,
    args: list[str],
    *,
    credential: str,
    namespace: str,
    cwd: str | None,
) -> tuple[CliResult | None, str | None, int]:
    """Returns ``(result, spawn_error, latency_ms)``."""
    started = time.monotonic()
    try:
        result = await runner.run_cli(args, credential=credential, cwd=cwd, extra_env={"MEMORY_NAMESPACE": namespace})
    except SpawnError as exc:
        logger.error("Memory command %s failed to start: %s", args[:2], exc.message)
        return None, exc.message, int((time.monotonic() - started) * 1000)
    return result, None, result.duration_ms


async def store_memory(
    runner: SwarmRunner,
    db: AsyncSession,
    *,
    owner_id: str,
    request: MemoryStoreRequest,
) -> MemoryStoreResponse:
    _require(namespace=request.namespace, key=request.key, content=request.content)
    credential = await runner.require_credential(owner_id)
    if request.session_id:
        await session_manager.get_owned_session(db, request.session_id, owner_id)

    result, spawn_error, latency = await _invoke(
        runner,
        ["memory", "store", request.key, request.content],
        credential=credential,
        namespace=request.namespace,
        cwd=request.project_path,
    )
    ok = result is not None and result.exit_code == 0
    error = spawn_error or (result.stderr if result is not None else None) or None
    if result is not None and not ok and not error:
        error = f"exit code {result.exit_code}"

    await memory_manager.append_operation(
        db,
        owner_id=owner_id,
        operation_type=MemoryOperationType.STORE,
        namespace=request.namespace,
        key_name=request.key,
        latency_ms=latency,
        success=ok,
        error_message=error,
        session_id=request.session_id,
    )
    if not ok:
        raise MemoryStoreError(error or "")

    return MemoryStoreResponse(
        success=True,
        namespace=request.namespace,
        key=request.key,
        latency=latency,
        output=result.stdout if result is not None else "",
    )


async def query_memory(
    runner: SwarmRunner,
    db: AsyncSession,
    *,
    owner_id: str,
    request: MemoryQueryRequest,
) -> MemoryQueryResponse:
    _require(namespace=request.namespace, query=request.query)
    command = _QUERY_COMMANDS.get(request.operation_type)
    if command is None:
        msg = f"operationType must be one of: {', '.join(_QUERY_COMMANDS)}"
        raise ValidationError(msg)
    credential = await runner.require_credential(owner_id)
    if request.session_id:
        await session_manager.get_owned_session(db, request.session_id, owner_id)

    result, spawn_error, latency = await _invoke(
        runner,
        ["memory", command, request.query],
        credential=credential,
        namespace=request.namespace,
        cwd=request.project_path,
    )
    ok = result is not None and result.exit_code == 0
    results, count = parse_results(result.stdout) if ok and result is not None else ([], 0)
    error = spawn_error or (result.stderr if result is not None else None) or None
    if result is not None and not ok and not error:
        error = f"exit code {result.exit_code}"

    await memory_manager.append_operation(
        db,
        owner_id=owner_id,
        operation_type=request.operation_type,
        namespace=request.namespace,
        query_text=request.query,
        result_count=count,
        latency_ms=latency,
        success=ok,
        error_message=error,
        session_id=request.session_id,
    )
    if not ok:
        raise MemoryQueryError(error or "")

    return MemoryQueryResponse(
        success=True,
        namespace=request.namespace,
        query=request.query,
        results=results,
        result_count=count,
        latency=latency,
    )
