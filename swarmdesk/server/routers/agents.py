"""Agent catalog endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from swarmdesk.server.catalog import AGENT_TYPES, agents_by_category
from swarmdesk.server.deps import Owner
from swarmdesk.server.models.api import AgentCatalog

router = APIRouter(tags=["agents"])


@router.get("/agents", response_model=AgentCatalog)
async def handle_list_agents(_owner: Owner) -> AgentCatalog:
    return AgentCatalog.model_validate({
        "agents": AGENT_TYPES,
        "agents_by_category": agents_by_category(),
        "total_agents": len(AGENT_TYPES),
    })
