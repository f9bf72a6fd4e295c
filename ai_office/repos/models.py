from __future__ import annotations

"""SQLAlchemy ORM models for AI Office persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``ai_office.repos.sql``.

Design
------

The schema is optimized for auditability and cross-process pause/resume:

- Agents carry the idle/working flag used by the atomic claim.
- Action logs and workflow node runs are append-only timelines.
- Tool approval requests store the full serialized session checkpoint.
- Workflow runs store the outputs map and the typed suspension, so a paused
  run can be resumed from the database alone.
- Jobs implement a delayed-delivery queue.

Structured columns use JSONB on PostgreSQL and JSON elsewhere. Table names are
prefixed with ``ao_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AgentRow(Base):
    """Row model for ``ao_agents``.

    ``status`` is the idle/working/error flag; the claim is a conditional
    update on it.
    """

    __tablename__ = "ao_agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    archetype: Mapped[str] = mapped_column(String(64))
    model: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    budget: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tools: Mapped[Optional[List[str]]] = mapped_column(JsonType, nullable=True)
    system_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    max_actions_per_session: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(32), default="idle")


class AgentMemoryRow(Base):
    __tablename__ = "ao_agent_memory"
    __table_args__ = (UniqueConstraint("agent_id", "project_id", "key", name="uq_ao_agent_memory_key"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[str] = mapped_column(String(64))
    key: Mapped[str] = mapped_column(String(255))
    value: Mapped[Any] = mapped_column(JsonType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ApprovalRuleRow(Base):
    __tablename__ = "ao_approval_rules"
    __table_args__ = (UniqueConstraint("project_id", "agent_id", "tool_name", name="uq_ao_approval_rule"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64))
    tool_name: Mapped[str] = mapped_column(String(128))
    action: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ActionLogRow(Base):
    """Row model for ``ao_action_logs`` (append-only)."""

    __tablename__ = "ao_action_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[str] = mapped_column(String(64))
    sequence: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(32))
    tool_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    input: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    output: Mapped[Any] = mapped_column(JsonType, nullable=True)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_kind: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ToolApprovalRow(Base):
    """Row model for ``ao_tool_approvals``.

    ``checkpoint`` holds the serialized ``SessionCheckpoint`` of the suspended
    session. ``workflow_run_id`` is set when the session runs inside a
    workflow run, which the decision then continues.
    """

    __tablename__ = "ao_tool_approvals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64))
    session_id: Mapped[str] = mapped_column(String(64))
    tool_name: Mapped[str] = mapped_column(String(128))
    input: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    status: Mapped[str] = mapped_column(String(32), index=True)
    checkpoint: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    workflow_run_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class WorkflowRow(Base):
    __tablename__ = "ao_workflows"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    definition: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class WorkflowRunRow(Base):
    """Row model for ``ao_workflow_runs``."""

    __tablename__ = "ao_workflow_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workflow_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(32))
    variables: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    outputs: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    paused_at_node_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    suspension: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_kind: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class WorkflowNodeRunRow(Base):
    """Row model for ``ao_workflow_node_runs`` (append-only)."""

    __tablename__ = "ao_workflow_node_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workflow_run_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[str] = mapped_column(String(64))
    node_id: Mapped[str] = mapped_column(String(64))
    node_type: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32))
    output: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class JobRow(Base):
    """Row model for ``ao_jobs``: a delayed-delivery job queue."""

    __tablename__ = "ao_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32))
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType)
    status: Mapped[str] = mapped_column(String(16), index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
