"""Swarm template store.

System templates (``owner_id IS NULL``, ``is_system``) are visible to every
owner; custom templates only to the owner that created them.  ``agent_types``
arrives here already serialized.
"""

from __future__ import annotations

from collections.abc import Mapping

import jinja2
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import SwarmTemplate
from swarmdesk.server.errors import NotFoundError, ValidationError
from swarmdesk.server.managers.sessions import parse_swarm_type

SYSTEM_TEMPLATES: list[dict] = [
    {
        "template_name": "Bug Fix Swarm",
        "description": "Quickly identify and fix bugs in code",
        "swarm_type": "quick",
        "agent_types": '["code-analyzer", "debugger", "test-writer"]',
        "default_namespace": "bugfix",
        "task_template": "Analyze and fix: {{description}}",
    },
    {
        "template_name": "Feature Development",
        "description": "Develop new features from requirements",
        "swarm_type": "hive-mind",
        "agent_types": '["architect", "code-generator", "test-writer", "documentation"]',
        "default_namespace": "feature",
        "task_template": "Implement feature: {{description}}",
    },
    {
        "template_name": "Code Review",
        "description": "Comprehensive code review with suggestions",
        "swarm_type": "quick",
        "agent_types": '["code-analyzer", "security-auditor", "performance-optimizer"]',
        "default_namespace": "review",
        "task_template": "Review code in: {{path}}",
    },
    {
        "template_name": "Refactoring",
        "description": "Refactor code for better quality",
        "swarm_type": "hive-mind",
        "agent_types": '["architect", "code-analyzer", "refactoring-agent", "test-writer"]',
        "default_namespace": "refactor",
        "task_template": "Refactor: {{description}}",
    },
    {
        "template_name": "Documentation",
        "description": "Generate comprehensive documentation",
        "swarm_type": "quick",
        "agent_types": '["documentation", "code-analyzer"]',
        "default_namespace": "docs",
        "task_template": "Document: {{path}}",
    },
    {
        "template_name": "Testing",
        "description": "Create comprehensive test suites",
        "swarm_type": "quick",
        "agent_types": '["test-writer", "test-runner", "code-analyzer"]',
        "default_namespace": "testing",
        "task_template": "Create tests for: {{path}}",
    },
]


class TemplateNotFoundError(NotFoundError):
    """Raised when a template is missing or not visible to the owner."""

    title = "Template not found"


class _KeepUndefined(jinja2.Undefined):
    """Renders an unknown ``{{ name }}`` back as the marker itself."""

    def __str__(self) -> str:
        return "{{ " + (self._undefined_name or "") + " }}"


# Task templates are user-authored.
_env = SandboxedEnvironment(autoescape=False, undefined=_KeepUndefined)  # noqa: S701


def render_task_template(task_template: str, values: Mapping[str, str]) -> str:
    """Render *task_template* with Jinja2; unknown markers are left in place.

    Raises ``ValidationError`` for a template that does not parse or render.
    """
    if "{{" not in task_template and "{%" not in task_template:
        return task_template
    try:
        return _env.from_string(task_template).render(dict(values))
    except jinja2.TemplateError as exc:
        msg = f"Invalid task template: {exc}"
        raise ValidationError(msg) from exc


async def ensure_system_templates(db: AsyncSession) -> int:
    """Insert any missing system template (matched by name).  Returns the number added."""
    result = await db.execute(select(SwarmTemplate.template_name).where(SwarmTemplate.is_system.is_(True)))
    existing = set(result.scalars().all())

    added = 0
    for seed in SYSTEM_TEMPLATES:
        if seed["template_name"] in existing:
            continue
        db.add(SwarmTemplate(**seed, is_system=True))
        added += 1
    if added:
        await db.commit()
    return added


async def list_templates(db: AsyncSession, owner_id: str, *, include_system: bool = True) -> list[SwarmTemplate]:
    """System templates first (if included), then the owner's, newest first."""
    if include_system:
        visibility = or_(SwarmTemplate.is_system.is_(True), SwarmTemplate.owner_id == owner_id)
    else:
        visibility = SwarmTemplate.owner_id == owner_id
    stmt = select(SwarmTemplate).where(visibility).order_by(
        SwarmTemplate.is_system.desc(),
        SwarmTemplate.created_at.desc(),
        SwarmTemplate.template_id.desc(),
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_template(db: AsyncSession, template_id: int, owner_id: str) -> SwarmTemplate:
    """Get a template visible to *owner_id*.  Raises ``TemplateNotFoundError``."""
    template = await db.get(SwarmTemplate, template_id)
    if template is None or not (template.is_system or template.owner_id == owner_id):
        msg = f"Template '{template_id}' not found"
        raise TemplateNotFoundError(msg)
    return template


async def create_template(
    db: AsyncSession,
    *,
    owner_id: str,
    template_name: str,
    swarm_type: str,
    agent_types: str,
    description: str | None = None,
    default_namespace: str | None = None,
    task_template: str | None = None,
) -> SwarmTemplate:
    """Create a custom (non-system) template for *owner_id*."""
    if not template_name or not template_name.strip():
        msg = "templateName is required"
        raise ValidationError(msg)
    if not agent_types:
        msg = "agentTypes must list at least one agent type"
        raise ValidationError(msg)
    kind = parse_swarm_type(swarm_type)
    if task_template:
        try:
            _env.parse(task_template)
        except jinja2.TemplateSyntaxError as exc:
            msg = f"Invalid task template: {exc}"
            raise ValidationError(msg) from exc

    template = SwarmTemplate(
        owner_id=owner_id,
        template_name=template_name,
        description=description,
        swarm_type=kind,
        agent_types=agent_types,
        default_namespace=default_namespace,
        task_template=task_template,
        is_system=False,
    )
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template
