"""Memory operation log.

Append-only: rows are inserted once and never updated.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import MemoryOperation
from swarmdesk.server.errors import ValidationError
from swarmdesk.server.models.enums import MemoryOperationType


async def append_operation(
    db: AsyncSession,
    *,
    owner_id: str,
    operation_type: MemoryOperationType,
    namespace: str | None,
    key_name: str | None = None,
    query_text: str | None = None,
    result_count: int = 0,
    latency_ms: float = 0.0,
    success: bool = True,
    error_message: str | None = None,
    session_id: str | None = None,
    metadata: str | None = None,
) -> MemoryOperation:
    """Insert one log entry."""
    if result_count < 0 or latency_ms < 0:
        msg = "result_count and latency_ms must be non-negative"
        raise ValidationError(msg)

    op = MemoryOperation(
        owner_id=owner_id,
        operation_type=MemoryOperationType(operation_type),
        namespace=namespace,
        key_name=key_name,
        query_text=query_text,
        result_count=result_count,
        latency_ms=latency_ms,
        success=success,
        error_message=error_message,
        session_id=session_id,
        metadata_=metadata,
    )
    db.add(op)
    await db.commit()
    await db.refresh(op)
    return op


async def list_operations(
    db: AsyncSession,
    owner_id: str,
    *,
    limit: int = 100,
    namespace: str | None = None,
) -> list[MemoryOperation]:
    """List an owner's memory operations, newest first."""
    stmt = select(MemoryOperation).where(MemoryOperation.owner_id == owner_id)
    if namespace:
        stmt = stmt.where(MemoryOperation.namespace == namespace)
    stmt = stmt.order_by(MemoryOperation.created_at.desc(), MemoryOperation.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
