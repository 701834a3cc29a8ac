"""API tests for the swarm session endpoints."""

from __future__ import annotations

import asyncio
import json

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.db.tables import SwarmSession
from swarmdesk.server.execution.credentials import StaticCredentialProvider
from swarmdesk.server.execution.runner import SwarmRunner
from swarmdesk.server.execution.spawner import FakeSpawner, ScriptedProcess
from swarmdesk.server.models.enums import OutputStream
from swarmdesk.server.registry import ProcessRegistry

BOB = {"Authorization": "Bearer bob-token"}

CREATE_PAYLOAD = {
    "projectName": "demo",
    "projectPath": "/tmp/demo",
    "taskDescription": "Fix the login bug",
    "swarmType": "quick",
    "agentTypes": ["debugger", "test-writer"],
}


async def _create(client: AsyncClient, **overrides: object) -> dict:
    resp = await client.post("/api/swarm/create", json={**CREATE_PAYLOAD, **overrides})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _sse_events(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


async def test_create_session(client: AsyncClient) -> None:
    data = await _create(client)

    assert data["success"] is True
    assert data["sessionId"].startswith("swarm-")
    assert data["status"] == "active"
    assert data["swarmType"] == "quick"
    assert data["projectName"] == "demo"
    assert data["namespace"].startswith("demo-")


async def test_create_missing_project_path_writes_nothing(client: AsyncClient, db_session: AsyncSession) -> None:
    resp = await client.post("/api/swarm/create", json={**CREATE_PAYLOAD, "projectPath": ""})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Missing required fields"
    assert "projectPath" in body["details"]
    count = (await db_session.execute(select(func.count()).select_from(SwarmSession))).scalar_one()
    assert count == 0


async def test_create_malformed_body(client: AsyncClient) -> None:
    resp = await client.post("/api/swarm/create", json={**CREATE_PAYLOAD, "agentTypes": "debugger"})
    assert resp.status_code == 400
    assert resp.json()["errors"]


async def test_session_detail_includes_workers(client: AsyncClient) -> None:
    created = await _create(client)

    resp = await client.get(f"/api/swarm/session/{created['sessionId']}")

    assert resp.status_code == 200
    data = resp.json()
    assert data["session"]["sessionId"] == created["sessionId"]
    assert data["session"]["metadata"] == {"agentTypes": ["debugger", "test-writer"]}
    assert data["workerCount"] == 2
    assert [w["agentType"] for w in data["workers"]] == ["debugger", "test-writer"]
    assert all(w["status"] == "pending" for w in data["workers"])


async def test_session_detail_not_found(client: AsyncClient) -> None:
    resp = await client.get("/api/swarm/session/swarm-missing")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Swarm session not found"


async def test_sessions_are_owner_scoped(client: AsyncClient) -> None:
    created = await _create(client)

    resp = await client.get(f"/api/swarm/session/{created['sessionId']}", headers=BOB)
    assert resp.status_code == 404

    resp = await client.get("/api/swarm/sessions", headers=BOB)
    assert resp.json() == {"sessions": [], "count": 0}


async def test_list_sessions(client: AsyncClient) -> None:
    first = await _create(client)
    second = await _create(client, projectName="other")

    resp = await client.get("/api/swarm/sessions")
    data = resp.json()
    assert data["count"] == 2
    assert [s["sessionId"] for s in data["sessions"]] == [second["sessionId"], first["sessionId"]]

    resp = await client.get("/api/swarm/sessions", params={"projectName": "other", "limit": 10})
    assert [s["sessionId"] for s in resp.json()["sessions"]] == [second["sessionId"]]


# ---------------------------------------------------------------------------
# Execute
# ---------------------------------------------------------------------------


async def test_execute_streaming(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(
        ScriptedProcess(chunks=[(OutputStream.STDOUT, "hello\n"), (OutputStream.STDERR, "careful\n")])
    )
    created = await _create(client)

    resp = await client.post(
        "/api/swarm/execute",
        json={"sessionId": created["sessionId"], "taskDescription": "Fix the login bug"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _sse_events(resp.text)
    assert [e["type"] for e in events] == ["status", "status", "output", "output", "completed"]
    assert events[0]["message"] == "Initializing swarm..."
    assert events[2] == {"type": "output", "message": "hello\n", "sessionId": created["sessionId"], "stream": "stdout"}
    assert events[3]["stream"] == "stderr"
    assert events[-1]["output"] == "hello\n"
    assert isinstance(events[-1]["duration"], int)

    detail = (await client.get(f"/api/swarm/session/{created['sessionId']}")).json()
    assert detail["session"]["status"] == "completed"
    assert detail["session"]["completedAt"] is not None
    assert {w["status"] for w in detail["workers"]} == {"completed"}


async def test_execute_non_streaming_success(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(chunks=[(OutputStream.STDOUT, "done")]))
    created = await _create(client)

    resp = await client.post(
        "/api/swarm/execute",
        json={"sessionId": created["sessionId"], "taskDescription": "Fix it", "streaming": False},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["sessionId"] == created["sessionId"]
    assert data["output"] == "done"
    assert data["error"] == ""
    assert isinstance(data["duration"], int)
    assert spawner.invocations[0]["args"][2] == "Fix it"


async def test_execute_non_streaming_nonzero_exit(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(chunks=[(OutputStream.STDERR, "bad things")], returncode=1))
    created = await _create(client)

    resp = await client.post(
        "/api/swarm/execute",
        json={"sessionId": created["sessionId"], "taskDescription": "Fix it", "streaming": False},
    )

    assert resp.status_code == 500
    data = resp.json()
    assert data["success"] is False
    assert data["error"] == "bad things"


async def test_execute_non_streaming_spawn_failure(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(spawn_error="No such file or directory: 'npx'"))
    created = await _create(client)

    resp = await client.post(
        "/api/swarm/execute",
        json={"sessionId": created["sessionId"], "taskDescription": "Fix it", "streaming": False},
    )

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to execute swarm", "details": "No such file or directory: 'npx'"}


async def test_execute_streaming_spawn_failure(client: AsyncClient, spawner: FakeSpawner) -> None:
    spawner._scripts.append(ScriptedProcess(spawn_error="permission denied"))
    created = await _create(client)

    resp = await client.post("/api/swarm/execute", json={"sessionId": created["sessionId"], "taskDescription": "x"})

    events = _sse_events(resp.text)
    assert events[-1]["type"] == "error"
    assert events[-1]["error"] == "permission denied"


async def test_execute_unknown_session(client: AsyncClient, spawner: FakeSpawner) -> None:
    resp = await client.post("/api/swarm/execute", json={"sessionId": "swarm-missing", "taskDescription": "x"})
    assert resp.status_code == 404
    assert spawner.invocations == []


async def test_execute_missing_credential(client: AsyncClient, runner: SwarmRunner, spawner: FakeSpawner) -> None:
    runner.credentials = StaticCredentialProvider({})
    created = await _create(client)

    resp = await client.post("/api/swarm/execute", json={"sessionId": created["sessionId"], "taskDescription": "x"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Claude API key not configured"
    assert spawner.invocations == []


async def test_execute_finished_session_conflicts(client: AsyncClient) -> None:
    created = await _create(client)
    payload = {"sessionId": created["sessionId"], "taskDescription": "x", "streaming": False}
    assert (await client.post("/api/swarm/execute", json=payload)).status_code == 200

    resp = await client.post("/api/swarm/execute", json=payload)
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Abort / delete
# ---------------------------------------------------------------------------


async def test_abort_running_session(
    client: AsyncClient, runner: SwarmRunner, spawner: FakeSpawner, registry: ProcessRegistry
) -> None:
    spawner._scripts.append(ScriptedProcess(chunks=[(OutputStream.STDOUT, "working")], hold_open=True))
    created = await _create(client)
    sid = created["sessionId"]

    stream = asyncio.create_task(
        client.post("/api/swarm/execute", json={"sessionId": sid, "taskDescription": "x"})
    )
    while registry.get(sid) is None:
        await asyncio.sleep(0.01)

    resp = await client.post(f"/api/swarm/abort/{sid}")
    assert resp.status_code == 200
    assert resp.json() == {"sessionId": sid, "status": "aborted", "terminated": True}

    events = _sse_events((await asyncio.wait_for(stream, timeout=5)).text)
    assert events[-1]["type"] == "failed"
    assert events[-1]["status"] == "aborted"

    detail = (await client.get(f"/api/swarm/session/{sid}")).json()
    assert detail["session"]["status"] == "aborted"


async def test_abort_twice_conflicts(client: AsyncClient) -> None:
    created = await _create(client)
    first = await client.post(f"/api/swarm/abort/{created['sessionId']}")
    assert first.json()["terminated"] is False

    second = await client.post(f"/api/swarm/abort/{created['sessionId']}")
    assert second.status_code == 409


async def test_abort_unknown_session(client: AsyncClient) -> None:
    resp = await client.post("/api/swarm/abort/swarm-missing")
    assert resp.status_code == 404


async def test_delete_session(client: AsyncClient) -> None:
    created = await _create(client)

    resp = await client.post(f"/api/swarm/session/{created['sessionId']}/delete")
    assert resp.status_code == 204

    resp = await client.get(f"/api/swarm/session/{created['sessionId']}")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


async def test_worker_status_and_tokens(client: AsyncClient) -> None:
    created = await _create(client)
    detail = (await client.get(f"/api/swarm/session/{created['sessionId']}")).json()
    worker_id = detail["workers"][0]["workerId"]

    resp = await client.post(f"/api/swarm/workers/{worker_id}/status", json={"status": "active"})
    assert resp.status_code == 200
    assert resp.json()["worker"]["status"] == "active"
    assert resp.json()["worker"]["startedAt"] is not None

    resp = await client.post(
        f"/api/swarm/workers/{worker_id}/tokens", json={"inputTokens": 40, "outputTokens": 2}
    )
    assert resp.json()["worker"]["totalTokens"] == 42

    resp = await client.post(
        f"/api/swarm/workers/{worker_id}/status", json={"status": "completed", "result": "fixed"}
    )
    worker = resp.json()["worker"]
    assert worker["status"] == "completed"
    assert worker["result"] == "fixed"
    assert worker["completedAt"] is not None


async def test_worker_negative_tokens(client: AsyncClient) -> None:
    created = await _create(client)
    detail = (await client.get(f"/api/swarm/session/{created['sessionId']}")).json()
    worker_id = detail["workers"][0]["workerId"]

    resp = await client.post(f"/api/swarm/workers/{worker_id}/tokens", json={"inputTokens": -5, "outputTokens": 0})
    assert resp.status_code == 400


async def test_worker_unknown_or_foreign(client: AsyncClient) -> None:
    resp = await client.post("/api/swarm/workers/worker-missing/status", json={"status": "active"})
    assert resp.status_code == 404

    created = await _create(client)
    detail = (await client.get(f"/api/swarm/session/{created['sessionId']}")).json()
    worker_id = detail["workers"][0]["workerId"]
    resp = await client.post(f"/api/swarm/workers/{worker_id}/status", json={"status": "active"}, headers=BOB)
    assert resp.status_code == 404
