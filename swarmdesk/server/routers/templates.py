"""Swarm template endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from swarmdesk.server.deps import DbSession, Owner
from swarmdesk.server.errors import ValidationError
from swarmdesk.server.managers import templates as template_manager
from swarmdesk.server.models.api import (
    TemplateCreate,
    TemplateEnvelope,
    TemplateList,
    TemplateRenderRequest,
    TemplateRenderResponse,
    TemplateResponse,
    dump_json,
)

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=TemplateList)
async def handle_list_templates(
    db: DbSession,
    owner: Owner,
    include_system: bool = Query(True, alias="includeSystem"),
) -> TemplateList:
    rows = await template_manager.list_templates(db, owner, include_system=include_system)
    templates = [TemplateResponse.model_validate(row) for row in rows]
    return TemplateList(templates=templates, count=len(templates))


@router.post("", response_model=TemplateEnvelope, status_code=status.HTTP_201_CREATED)
async def handle_create_template(body: TemplateCreate, db: DbSession, owner: Owner) -> TemplateEnvelope:
    if not body.agent_types:
        msg = "agentTypes must list at least one agent type"
        raise ValidationError(msg)
    template = await template_manager.create_template(
        db,
        owner_id=owner,
        template_name=body.template_name,
        swarm_type=body.swarm_type,
        agent_types=dump_json(body.agent_types) or "",
        description=body.description,
        default_namespace=body.default_namespace,
        task_template=body.task_template,
    )
    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.post("/{template_id}/render", response_model=TemplateRenderResponse)
async def handle_render_template(
    template_id: int, body: TemplateRenderRequest, db: DbSession, owner: Owner
) -> TemplateRenderResponse:
    template = await template_manager.get_template(db, template_id, owner)
    rendered = template_manager.render_task_template(template.task_template or "", body.values)
    return TemplateRenderResponse(task_description=rendered)
