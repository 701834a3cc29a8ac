"""API tests for auth, health, agent catalog, templates, metrics and the CLI check."""

from __future__ import annotations

from fastapi.testclient import TestClient
from httpx import AsyncClient

from swarmdesk.server.app import app
from swarmdesk.server.catalog import AGENT_TYPES
from swarmdesk.server.execution.spawner import FakeSpawner, ScriptedProcess
from swarmdesk.server.managers.templates import SYSTEM_TEMPLATES
from swarmdesk.server.models.enums import OutputStream


def test_health() -> None:
    client = TestClient(app)
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_or_bad_token(client: AsyncClient) -> None:
    resp = await client.get("/api/swarm/sessions", headers={"Authorization": ""})
    assert resp.status_code == 401

    resp = await client.get("/api/swarm/sessions", headers={"Authorization": "Bearer wrong"})
    assert resp.status_code == 401


async def test_agent_catalog(client: AsyncClient) -> None:
    resp = await client.get("/api/agents")

    data = resp.json()
    assert data["totalAgents"] == len(AGENT_TYPES)
    assert data["agents"]["debugger"]["category"] == "Development"
    development = data["agentsByCategory"]["Development"]
    assert {"type": "code-analyzer", "name": "Code Analyzer", "description": "Analyze code structure and quality"} in (
        development
    )


async def test_templates_list_create_render(client: AsyncClient, session_factory) -> None:
    from swarmdesk.server.managers.templates import ensure_system_templates

    async with session_factory() as db:
        await ensure_system_templates(db)

    resp = await client.post(
        "/api/templates",
        json={
            "templateName": "Hotfix",
            "swarmType": "quick",
            "agentTypes": ["debugger"],
            "taskTemplate": "Hotfix {{ticket}}: {{description}}",
        },
    )
    assert resp.status_code == 201
    template = resp.json()["template"]
    assert template["agentTypes"] == ["debugger"]
    assert template["isSystem"] is False

    listed = (await client.get("/api/templates")).json()
    assert listed["count"] == len(SYSTEM_TEMPLATES) + 1
    assert listed["templates"][0]["isSystem"] is True

    custom = (await client.get("/api/templates", params={"includeSystem": "false"})).json()
    assert [t["templateName"] for t in custom["templates"]] == ["Hotfix"]

    resp = await client.post(
        f"/api/templates/{template['templateId']}/render", json={"values": {"ticket": "OPS-1"}}
    )
    assert resp.json() == {"taskDescription": "Hotfix OPS-1: {{ description }}"}


async def test_template_requires_agent_types(client: AsyncClient) -> None:
    resp = await client.post("/api/templates", json={"templateName": "Empty", "swarmType": "quick", "agentTypes": []})
    assert resp.status_code == 400


async def test_template_with_broken_jinja_is_rejected(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/templates",
        json={
            "templateName": "Broken",
            "swarmType": "quick",
            "agentTypes": ["debugger"],
            "taskTemplate": "{% if urgent %}Hotfix {{ ticket }}",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["details"].startswith("Invalid task template")


async def test_render_unknown_template(client: AsyncClient) -> None:
    resp = await client.post("/api/templates/999/render", json={"values": {}})
    assert resp.status_code == 404


async def test_agent_metrics_after_run(client: AsyncClient) -> None:
    created = (
        await client.post(
            "/api/swarm/create",
            json={
                "projectName": "demo",
                "projectPath": "/tmp/demo",
                "taskDescription": "x",
                "agentTypes": ["architect"],
            },
        )
    ).json()
    await client.post(
        "/api/swarm/execute", json={"sessionId": created["sessionId"], "taskDescription": "x", "streaming": False}
    )

    data = (await client.get("/api/metrics/agents")).json()
    assert data["count"] == 1
    metric = data["metrics"][0]
    assert metric["agentType"] == "architect"
    assert metric["usageCount"] == 1
    assert metric["successRate"] == 1.0

    filtered = (await client.get("/api/metrics/agents", params={"agentType": "debugger"})).json()
    assert filtered == {"metrics": [], "count": 0}


async def test_cli_check_installed(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(chunks=[(OutputStream.STDOUT, "2.0.0-alpha.90\n")]))

    resp = await client.post("/api/mcp/check")

    assert resp.json() == {
        "success": True,
        "installed": True,
        "version": "2.0.0-alpha.90",
        "message": "claude-flow@alpha is available",
    }
    assert spawner.invocations[0]["args"] == ["claude-flow@alpha", "--version"]


async def test_cli_check_missing(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(spawn_error="npx: not found"))

    data = (await client.post("/api/mcp/check")).json()

    assert data["installed"] is False
    assert data["version"] == "unknown"
    assert data["message"] == "claude-flow@alpha not found"
