"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from swarmdesk.server.db.tables import UtcDateTime
from swarmdesk.server.managers.templates import SYSTEM_TEMPLATES

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "swarm_sessions",
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("project_name", sa.Text(), nullable=False),
        sa.Column("project_path", sa.Text(), nullable=False),
        sa.Column("swarm_type", sa.String(), nullable=False),
        sa.Column("task_description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), server_default="active", nullable=False),
        sa.Column("namespace", sa.String(), nullable=True),
        sa.Column("created_at", UtcDateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", UtcDateTime(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("session_id", name=op.f("pk_swarm_sessions")),
    )
    op.create_index("ix_swarm_sessions_owner_id", "swarm_sessions", ["owner_id"])
    op.create_index("ix_swarm_sessions_project_name", "swarm_sessions", ["project_name"])
    op.create_index("ix_swarm_sessions_status", "swarm_sessions", ["status"])
    op.create_index("ix_swarm_sessions_created_at", "swarm_sessions", ["created_at"])

    op.create_table(
        "swarm_workers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("worker_id", sa.String(), nullable=False),
        sa.Column("agent_type", sa.String(), nullable=False),
        sa.Column("agent_name", sa.String(), nullable=False),
        sa.Column("task", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), server_default="pending", nullable=False),
        sa.Column("started_at", UtcDateTime(), nullable=True),
        sa.Column("completed_at", UtcDateTime(), nullable=True),
        sa.Column("input_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("output_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["swarm_sessions.session_id"],
            name="fk_swarm_workers_session_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_swarm_workers")),
        sa.UniqueConstraint("worker_id", name=op.f("uq_swarm_workers_worker_id")),
    )
    op.create_index("ix_swarm_workers_session_id", "swarm_workers", ["session_id"])
    op.create_index("ix_swarm_workers_status", "swarm_workers", ["status"])
    op.create_index("ix_swarm_workers_agent_type", "swarm_workers", ["agent_type"])

    op.create_table(
        "memory_operations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=True),
        sa.Column("operation_type", sa.String(), nullable=False),
        sa.Column("namespace", sa.String(), nullable=True),
        sa.Column("key_name", sa.Text(), nullable=True),
        sa.Column("query_text", sa.Text(), nullable=True),
        sa.Column("result_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("latency_ms", sa.Float(), server_default="0", nullable=False),
        sa.Column("success", sa.Boolean(), server_default="1", nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", UtcDateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["swarm_sessions.session_id"],
            name="fk_memory_operations_session_id",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_memory_operations")),
    )
    op.create_index("ix_memory_operations_owner_id", "memory_operations", ["owner_id"])
    op.create_index("ix_memory_operations_session_id", "memory_operations", ["session_id"])
    op.create_index("ix_memory_operations_namespace", "memory_operations", ["namespace"])
    op.create_index("ix_memory_operations_created_at", "memory_operations", ["created_at"])

    op.create_table(
        "agent_metrics",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("agent_type", sa.String(), nullable=False),
        sa.Column("usage_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_input_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_output_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("avg_completion_time_ms", sa.Float(), nullable=True),
        sa.Column("success_rate", sa.Float(), nullable=True),
        sa.Column("last_used", UtcDateTime(), nullable=True),
        sa.Column("updated_at", UtcDateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_agent_metrics")),
        sa.UniqueConstraint("owner_id", "agent_type", name="uq_agent_metrics_owner_id_agent_type"),
    )
    op.create_index("ix_agent_metrics_usage_count", "agent_metrics", ["usage_count"])

    templates = op.create_table(
        "swarm_templates",
        sa.Column("template_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("template_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("swarm_type", sa.String(), nullable=False),
        sa.Column("agent_types", sa.Text(), nullable=False),
        sa.Column("default_namespace", sa.String(), nullable=True),
        sa.Column("task_template", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("created_at", UtcDateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", UtcDateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("template_id", name=op.f("pk_swarm_templates")),
    )
    op.create_index("ix_swarm_templates_owner_id", "swarm_templates", ["owner_id"])
    op.create_index("ix_swarm_templates_is_system", "swarm_templates", ["is_system"])

    op.bulk_insert(templates, [{**seed, "is_system": True} for seed in SYSTEM_TEMPLATES])


def downgrade() -> None:
    op.drop_index("ix_swarm_templates_is_system", table_name="swarm_templates")
    op.drop_index("ix_swarm_templates_owner_id", table_name="swarm_templates")
    op.drop_table("swarm_templates")
    op.drop_index("ix_agent_metrics_usage_count", table_name="agent_metrics")
    op.drop_table("agent_metrics")
    op.drop_index("ix_memory_operations_created_at", table_name="memory_operations")
    op.drop_index("ix_memory_operations_namespace", table_name="memory_operations")
    op.drop_index("ix_memory_operations_session_id", table_name="memory_operations")
    op.drop_index("ix_memory_operations_owner_id", table_name="memory_operations")
    op.drop_table("memory_operations")
    op.drop_index("ix_swarm_workers_agent_type", table_name="swarm_workers")
    op.drop_index("ix_swarm_workers_status", table_name="swarm_workers")
    op.drop_index("ix_swarm_workers_session_id", table_name="swarm_workers")
    op.drop_table("swarm_workers")
    op.drop_index("ix_swarm_sessions_created_at", table_name="swarm_sessions")
    op.drop_index("ix_swarm_sessions_status", table_name="swarm_sessions")
    op.drop_index("ix_swarm_sessions_project_name", table_name="swarm_sessions")
    op.drop_index("ix_swarm_sessions_owner_id", table_name="swarm_sessions")
    op.drop_table("swarm_sessions")
