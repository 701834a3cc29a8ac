"""API request / response schemas.

These thin schemas sit between HTTP and the ORM layer:

- **Request** schemas accept camelCase JSON and provide defaults.  Required
  text fields default to ``""`` so that emptiness is reported by the managers
  as a ``ValidationError`` (HTTP 400) -- the same path as a missing field.
- **Response** schemas serialize ORM rows via ``from_attributes`` and emit
  camelCase keys.

JSON blobs (``metadata``, ``agent_types``) are stored as opaque text.  They
are encoded with :func:`dump_json` before reaching a manager and decoded by
the response schemas' validators.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from swarmdesk.server.models.enums import (
    MemoryOperationType,
    SessionStatus,
    SwarmType,
    WorkerStatus,
)


def dump_json(value: Any) -> str | None:
    """Encode a JSON-compatible value for an opaque text column."""
    if value is None:
        return None
    return json.dumps(value)


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SwarmCreate(CamelModel):
    """Input for ``POST /swarm/create``."""

    project_name: str = ""
    project_path: str = ""
    task_description: str = ""
    swarm_type: str = SwarmType.QUICK
    agent_types: list[str] = Field(default_factory=list)
    namespace: str | None = None


class SwarmCreated(CamelModel):
    success: bool = True
    session_id: str
    namespace: str | None
    swarm_type: str
    project_name: str
    status: SessionStatus


class SwarmExecute(CamelModel):
    """Input for ``POST /swarm/execute``."""

    session_id: str = ""
    task_description: str = ""
    swarm_type: str = SwarmType.QUICK
    streaming: bool = True


class ExecutionResponse(CamelModel):
    """Non-streaming execution outcome."""

    success: bool
    session_id: str
    duration: int
    output: str
    error: str


class SessionResponse(CamelModel):
    """Serialized swarm session row."""

    session_id: str
    owner_id: str
    project_name: str
    project_path: str
    swarm_type: str
    task_description: str
    status: SessionStatus
    namespace: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    metadata: Any = Field(default=None, validation_alias="metadata_")

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_metadata(cls, value: Any) -> Any:
        return _load_json(value)


class SessionList(CamelModel):
    sessions: list[SessionResponse]
    count: int


class WorkerResponse(CamelModel):
    """Serialized swarm worker row."""

    worker_id: str
    session_id: str
    agent_type: str
    agent_name: str
    task: str
    status: WorkerStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    input_tokens: int
    output_tokens: int
    total_tokens: int
    result: str | None = None
    error_message: str | None = None
    metadata: Any = Field(default=None, validation_alias="metadata_")

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_metadata(cls, value: Any) -> Any:
        return _load_json(value)


class SessionDetailResponse(CamelModel):
    session: SessionResponse
    workers: list[WorkerResponse]
    worker_count: int


class AbortResponse(CamelModel):
    session_id: str
    status: SessionStatus
    terminated: bool


class WorkerStatusUpdate(CamelModel):
    status: WorkerStatus
    result: str | None = None
    error: str | None = None


class WorkerTokensUpdate(CamelModel):
    input_tokens: int
    output_tokens: int


class WorkerEnvelope(CamelModel):
    worker: WorkerResponse


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class MemoryStoreRequest(CamelModel):
    namespace: str = ""
    key: str = ""
    content: str = ""
    project_path: str | None = None
    session_id: str | None = None


class MemoryStoreResponse(CamelModel):
    success: bool
    namespace: str
    key: str
    latency: int
    output: str


class MemoryQueryRequest(CamelModel):
    namespace: str = ""
    query: str = ""
    operation_type: MemoryOperationType = MemoryOperationType.QUERY
    project_path: str | None = None
    session_id: str | None = None


class MemoryQueryResponse(CamelModel):
    success: bool
    namespace: str
    query: str
    results: Any
    result_count: int
    latency: int


class MemoryOperationResponse(CamelModel):
    id: int
    owner_id: str
    session_id: str | None = None
    operation_type: str
    namespace: str | None = None
    key_name: str | None = None
    query_text: str | None = None
    result_count: int
    latency_ms: float
    success: bool
    error_message: str | None = None
    created_at: datetime
    metadata: Any = Field(default=None, validation_alias="metadata_")

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_metadata(cls, value: Any) -> Any:
        return _load_json(value)


class MemoryOperationList(CamelModel):
    operations: list[MemoryOperationResponse]
    count: int


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class AgentMetricResponse(CamelModel):
    owner_id: str
    agent_type: str
    usage_count: int
    total_input_tokens: int
    total_output_tokens: int
    total_tokens: int
    avg_completion_time_ms: float | None = None
    success_rate: float | None = None
    last_used: datetime | None = None
    updated_at: datetime


class AgentMetricList(CamelModel):
    metrics: list[AgentMetricResponse]
    count: int


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateCreate(CamelModel):
    template_name: str = ""
    description: str | None = None
    swarm_type: str = ""
    agent_types: list[str] = Field(default_factory=list)
    default_namespace: str | None = None
    task_template: str | None = None


class TemplateResponse(CamelModel):
    template_id: int
    owner_id: str | None = None
    template_name: str
    description: str | None = None
    swarm_type: str
    agent_types: list[str]
    default_namespace: str | None = None
    task_template: str | None = None
    is_system: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("agent_types", mode="before")
    @classmethod
    def decode_agent_types(cls, value: Any) -> Any:
        return _load_json(value)


class TemplateList(CamelModel):
    templates: list[TemplateResponse]
    count: int


class TemplateEnvelope(CamelModel):
    template: TemplateResponse


class TemplateRenderRequest(CamelModel):
    values: dict[str, str] = Field(default_factory=dict)


class TemplateRenderResponse(CamelModel):
    task_description: str


# ---------------------------------------------------------------------------
# Agents / CLI
# ---------------------------------------------------------------------------


class AgentInfo(CamelModel):
    type: str
    name: str
    description: str


class AgentCatalog(CamelModel):
    agents: dict[str, dict[str, str]]
    agents_by_category: dict[str, list[AgentInfo]]
    total_agents: int


class CliCheckResponse(CamelModel):
    success: bool
    installed: bool
    version: str
    message: str
