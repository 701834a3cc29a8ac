"""Data models for the server."""

from swarmdesk.server.models.enums import (
    EventType,
    MemoryOperationType,
    OutputStream,
    SessionStatus,
    SwarmType,
    WorkerStatus,
)
from swarmdesk.server.models.events import SwarmEvent

__all__ = [
    "EventType",
    "MemoryOperationType",
    "OutputStream",
    "SessionStatus",
    "SwarmEvent",
    "SwarmType",
    "WorkerStatus",
]
