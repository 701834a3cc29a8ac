"""SQLAlchemy ORM models.

These are the single source of truth for the database schema. Alembic reads
``Base.metadata`` to autogenerate migration scripts.

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.
``metadata`` / ``agent_types`` columns hold serialized JSON as opaque text;
encoding and decoding happen at the API boundary, never in the managers.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UtcDateTime(TypeDecorator[datetime]):
    """Timezone-aware timestamp that always loads as UTC.

    SQLite has no timezone support and hands back naive values; those are
    tagged as UTC on the way out so comparisons never mix naive and aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: object) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: object) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base with naming convention for constraints."""

    pass


# Apply naming convention to the metadata for deterministic constraint names.
Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class SwarmSession(Base):
    __tablename__ = "swarm_sessions"
    __table_args__ = (
        Index("ix_swarm_sessions_owner_id", "owner_id"),
        Index("ix_swarm_sessions_project_name", "project_name"),
        Index("ix_swarm_sessions_status", "status"),
        Index("ix_swarm_sessions_created_at", "created_at"),
    )

    session_id: Mapped[str] = mapped_column(primary_key=True)
    owner_id: Mapped[str]
    project_name: Mapped[str] = mapped_column(Text)
    project_path: Mapped[str] = mapped_column(Text)
    swarm_type: Mapped[str]
    task_description: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(server_default="active")
    namespace: Mapped[str | None]
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    error_message: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[str | None] = mapped_column("metadata", Text)


class SwarmWorker(Base):
    __tablename__ = "swarm_workers"
    __table_args__ = (
        Index("ix_swarm_workers_session_id", "session_id"),
        Index("ix_swarm_workers_status", "status"),
        Index("ix_swarm_workers_agent_type", "agent_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("swarm_sessions.session_id", ondelete="CASCADE", name="fk_swarm_workers_session_id"),
    )
    worker_id: Mapped[str] = mapped_column(unique=True)
    agent_type: Mapped[str]
    agent_name: Mapped[str]
    task: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(server_default="pending")
    started_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    input_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    output_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    total_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    result: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[str | None] = mapped_column("metadata", Text)


class MemoryOperation(Base):
    __tablename__ = "memory_operations"
    __table_args__ = (
        Index("ix_memory_operations_owner_id", "owner_id"),
        Index("ix_memory_operations_session_id", "session_id"),
        Index("ix_memory_operations_namespace", "namespace"),
        Index("ix_memory_operations_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str]
    session_id: Mapped[str | None] = mapped_column(
        ForeignKey("swarm_sessions.session_id", ondelete="SET NULL", name="fk_memory_operations_session_id"),
    )
    operation_type: Mapped[str]
    namespace: Mapped[str | None]
    key_name: Mapped[str | None] = mapped_column(Text)
    query_text: Mapped[str | None] = mapped_column(Text)
    result_count: Mapped[int] = mapped_column(default=0, server_default="0")
    latency_ms: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    success: Mapped[bool] = mapped_column(default=True, server_default="1")
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, server_default=func.now())
    metadata_: Mapped[str | None] = mapped_column("metadata", Text)


class AgentMetric(Base):
    __tablename__ = "agent_metrics"
    __table_args__ = (
        UniqueConstraint("owner_id", "agent_type", name="uq_agent_metrics_owner_id_agent_type"),
        Index("ix_agent_metrics_usage_count", "usage_count"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str]
    agent_type: Mapped[str]
    usage_count: Mapped[int] = mapped_column(default=0, server_default="0")
    total_input_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    total_output_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    total_tokens: Mapped[int] = mapped_column(default=0, server_default="0")
    avg_completion_time_ms: Mapped[float | None] = mapped_column(Float)
    success_rate: Mapped[float | None] = mapped_column(Float)
    last_used: Mapped[datetime | None] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class SwarmTemplate(Base):
    __tablename__ = "swarm_templates"
    __table_args__ = (
        Index("ix_swarm_templates_owner_id", "owner_id"),
        Index("ix_swarm_templates_is_system", "is_system"),
    )

    template_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str | None]
    template_name: Mapped[str]
    description: Mapped[str | None] = mapped_column(Text)
    swarm_type: Mapped[str]
    agent_types: Mapped[str] = mapped_column(Text)
    default_namespace: Mapped[str | None]
    task_template: Mapped[str | None] = mapped_column(Text)
    is_system: Mapped[bool] = mapped_column(default=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
