"""Per-agent-type performance aggregates.

One row per ``(owner, agent_type)``.  Averages are maintained incrementally:
``new_avg = (old_avg * old_count + value) / new_count``.  A success counts
as ``1.0`` and a failure as ``0.0``, so ``success_rate`` is the running mean
of values in ``[0, 1]`` and cannot leave that interval.
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import AgentMetric, utcnow
from swarmdesk.server.errors import ValidationError


def rolling_average(old_avg: float | None, old_count: int, value: float) -> float:
    """Fold *value* into an average taken over *old_count* samples."""
    if old_count <= 0 or old_avg is None:
        return float(value)
    return (old_avg * old_count + value) / (old_count + 1)


async def record_agent_run(
    db: AsyncSession,
    *,
    owner_id: str,
    agent_type: str,
    input_tokens: int,
    output_tokens: int,
    completion_time_ms: float,
    success: bool,
) -> AgentMetric:
    """Fold one finished agent run into the owner's aggregate for *agent_type*."""
    if input_tokens < 0 or output_tokens < 0 or completion_time_ms < 0:
        msg = "Token counts and completion time must be non-negative"
        raise ValidationError(msg)

    outcome = 1.0 if success else 0.0
    now = utcnow()

    stmt = select(AgentMetric).where(AgentMetric.owner_id == owner_id, AgentMetric.agent_type == agent_type)
    metric = (await db.execute(stmt)).scalar_one_or_none()

    if metric is None:
        metric = AgentMetric(
            owner_id=owner_id,
            agent_type=agent_type,
            usage_count=1,
            total_input_tokens=input_tokens,
            total_output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            avg_completion_time_ms=float(completion_time_ms),
            success_rate=outcome,
            last_used=now,
        )
        db.add(metric)
    else:
        old_count = metric.usage_count
        metric.avg_completion_time_ms = rolling_average(metric.avg_completion_time_ms, old_count, completion_time_ms)
        metric.success_rate = rolling_average(metric.success_rate, old_count, outcome)
        metric.usage_count = old_count + 1
        metric.total_input_tokens += input_tokens
        metric.total_output_tokens += output_tokens
        metric.total_tokens += input_tokens + output_tokens
        metric.last_used = now

    await db.commit()
    await db.refresh(metric)
    logger.debug("Agent metric {}/{}: usage={}", owner_id, agent_type, metric.usage_count)
    return metric


async def list_agent_metrics(
    db: AsyncSession,
    owner_id: str,
    *,
    agent_type: str | None = None,
) -> list[AgentMetric]:
    """List an owner's aggregates, most used first."""
    stmt = select(AgentMetric).where(AgentMetric.owner_id == owner_id)
    if agent_type:
        stmt = stmt.where(AgentMetric.agent_type == agent_type)
    stmt = stmt.order_by(AgentMetric.usage_count.desc(), AgentMetric.agent_type.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())
