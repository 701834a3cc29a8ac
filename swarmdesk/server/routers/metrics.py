"""Agent performance metrics."""

from __future__ import annotations

from fastapi import APIRouter, Query

from swarmdesk.server.deps import DbSession, Owner
from swarmdesk.server.managers import metrics as metric_manager
from swarmdesk.server.models.api import AgentMetricList, AgentMetricResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/agents", response_model=AgentMetricList)
async def handle_agent_metrics(
    db: DbSession,
    owner: Owner,
    agent_type: str | None = Query(None, alias="agentType"),
) -> AgentMetricList:
    rows = await metric_manager.list_agent_metrics(db, owner, agent_type=agent_type)
    metrics = [AgentMetricResponse.model_validate(row) for row in rows]
    return AgentMetricList(metrics=metrics, count=len(metrics))
