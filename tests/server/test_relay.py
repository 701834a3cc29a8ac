"""Tests for the per-execution event relay."""

from __future__ import annotations

import json

from swarmdesk.server.execution.relay import EventRelay
from swarmdesk.server.models.enums import EventType
from swarmdesk.server.models.events import SwarmEvent


async def test_events_in_order_until_terminal() -> None:
    relay = EventRelay()
    await relay.publish(SwarmEvent(type=EventType.STATUS, message="Initializing swarm...", session_id="s1"))
    await relay.publish(SwarmEvent(type=EventType.OUTPUT, message="hello", session_id="s1", stream="stdout"))
    await relay.publish(SwarmEvent(type=EventType.COMPLETED, message="done", session_id="s1", duration=5))
    await relay.publish(SwarmEvent(type=EventType.OUTPUT, message="late", session_id="s1"))

    seen = [event.type async for event in relay.events()]

    assert seen == [EventType.STATUS, EventType.OUTPUT, EventType.COMPLETED]
    assert relay.closed


async def test_publish_after_close_is_dropped() -> None:
    relay = EventRelay()
    relay.close()
    await relay.publish(SwarmEvent(type=EventType.OUTPUT, message="ignored", session_id="s1"))
    assert relay._queue.empty()


async def test_sse_frames_are_flat_json() -> None:
    relay = EventRelay()
    event = SwarmEvent(
        type=EventType.FAILED, message="Swarm execution failed", session_id="s1", error="boom", exit_code=2
    )
    await relay.publish(event)

    frames = [frame async for frame in relay.sse_frames()]

    assert len(frames) == 1
    assert json.loads(frames[0]["data"]) == {
        "type": "failed",
        "message": "Swarm execution failed",
        "sessionId": "s1",
        "error": "boom",
        "exitCode": 2,
    }
