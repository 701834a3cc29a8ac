"""Shared enumerations used across the server."""

from __future__ import annotations

from enum import StrEnum

# -- Session -----------------------------------------------------------------


class SessionStatus(StrEnum):
    """Durable swarm session status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


TERMINAL_SESSION_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.ABORTED)


class SwarmType(StrEnum):
    QUICK = "quick"
    HIVE_MIND = "hive-mind"


# -- Worker ------------------------------------------------------------------


class WorkerStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_WORKER_STATUSES = (WorkerStatus.COMPLETED, WorkerStatus.FAILED)


# -- Memory ------------------------------------------------------------------


class MemoryOperationType(StrEnum):
    STORE = "store"
    QUERY = "query"
    VECTOR_SEARCH = "vector-search"
    STORE_VECTOR = "store-vector"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Event types relayed to the SSE consumer during execution."""

    # Progress
    STATUS = "status"
    OUTPUT = "output"

    # Terminal
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.COMPLETED, EventType.FAILED, EventType.ERROR)


class OutputStream(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"
