from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides the SQL-backed persistence implementation for the
repository interfaces defined in ``ai_office.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production uses migrations).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Races between processes (agent claim, approval resolution, job claim)
are settled by a single ``UPDATE ... WHERE <expected state>`` whose row count
tells the caller whether it won.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ai_office.agent_core.schemas.domain import (
    ActionRecord,
    AgentProfile,
    AgentStatus,
    ApprovalDecision,
    ApprovalRule,
    ModelParams,
    SessionCheckpoint,
    ToolApprovalRequest,
    ToolApprovalStatus,
)
from ai_office.worker.jobs import JobKind, JobStatus, QueuedJob
from ai_office.workflow.models import NodeOutput, Suspend, Workflow, WorkflowDefinition, WorkflowRun

from .models import (
    ActionLogRow,
    AgentMemoryRow,
    AgentRow,
    ApprovalRuleRow,
    Base,
    JobRow,
    ToolApprovalRow,
    WorkflowNodeRunRow,
    WorkflowRow,
    WorkflowRunRow,
)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes; every stored timestamp is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class SqlAgentRepository:
    """SQL implementation of ``AgentRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, agent_id: str) -> Optional[AgentProfile]:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent_id)
            if row is None:
                return None
            return AgentProfile(
                id=row.id,
                project_id=row.project_id,
                name=row.name,
                archetype=row.archetype,
                model=ModelParams.model_validate(row.model or {}),
                budget=row.budget,
                tools=row.tools,
                system_prompt=row.system_prompt,
                max_actions_per_session=row.max_actions_per_session,
                is_active=row.is_active,
                status=AgentStatus(row.status),
            )

    async def save(self, agent: AgentProfile) -> None:
        async with self.session_factory() as s:
            await s.merge(
                AgentRow(
                    id=agent.id,
                    project_id=agent.project_id,
                    name=agent.name,
                    archetype=agent.archetype,
                    model=agent.model.model_dump(mode="json"),
                    budget=agent.budget,
                    tools=agent.tools,
                    system_prompt=agent.system_prompt,
                    max_actions_per_session=agent.max_actions_per_session,
                    is_active=agent.is_active,
                    status=agent.status.value,
                )
            )
            await s.commit()

    async def get_memory(self, agent_id: str, project_id: str) -> Dict[str, Any]:
        async with self.session_factory() as s:
            stmt = (
                select(AgentMemoryRow)
                .where(AgentMemoryRow.agent_id == agent_id, AgentMemoryRow.project_id == project_id)
                .order_by(AgentMemoryRow.key)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return {r.key: r.value for r in rows}

    async def set_memory(self, agent_id: str, project_id: str, key: str, value: Any) -> None:
        async with self.session_factory() as s:
            stmt = select(AgentMemoryRow).where(
                AgentMemoryRow.agent_id == agent_id,
                AgentMemoryRow.project_id == project_id,
                AgentMemoryRow.key == key,
            )
            row = (await s.execute(stmt)).scalars().first()
            if row is None:
                s.add(
                    AgentMemoryRow(
                        id=str(uuid4()),
                        agent_id=agent_id,
                        project_id=project_id,
                        key=key,
                        value=value,
                        updated_at=_utc_now(),
                    )
                )
            else:
                row.value = value
                row.updated_at = _utc_now()
            await s.commit()

    async def claim(self, agent_id: str) -> bool:
        async with self.session_factory() as s:
            result = await s.execute(
                update(AgentRow)
                .where(
                    AgentRow.id == agent_id,
                    AgentRow.status == AgentStatus.idle.value,
                    AgentRow.is_active.is_(True),
                )
                .values(status=AgentStatus.working.value)
            )
            await s.commit()
            return result.rowcount == 1

    async def release(self, agent_id: str, status: AgentStatus) -> None:
        async with self.session_factory() as s:
            await s.execute(update(AgentRow).where(AgentRow.id == agent_id).values(status=status.value))
            await s.commit()


@dataclass(frozen=True)
class SqlApprovalRuleRepository:
    """SQL implementation of ``ApprovalRuleRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def lookup(self, project_id: str, agent_id: str, tool_name: str) -> Optional[ApprovalDecision]:
        async with self.session_factory() as s:
            stmt = (
                select(ApprovalRuleRow.action)
                .where(
                    ApprovalRuleRow.project_id == project_id,
                    ApprovalRuleRow.agent_id == agent_id,
                    ApprovalRuleRow.tool_name == tool_name,
                )
                .limit(1)
            )
            action = (await s.execute(stmt)).scalar_one_or_none()
            return ApprovalDecision(action) if action is not None else None

    async def upsert(self, rule: ApprovalRule) -> None:
        async with self.session_factory() as s:
            stmt = select(ApprovalRuleRow).where(
                ApprovalRuleRow.project_id == rule.project_id,
                ApprovalRuleRow.agent_id == rule.agent_id,
                ApprovalRuleRow.tool_name == rule.tool_name,
            )
            row = (await s.execute(stmt)).scalars().first()
            if row is None:
                s.add(
                    ApprovalRuleRow(
                        id=rule.id,
                        project_id=rule.project_id,
                        agent_id=rule.agent_id,
                        tool_name=rule.tool_name,
                        action=rule.action.value,
                        created_at=rule.created_at,
                    )
                )
            else:
                row.action = rule.action.value
            await s.commit()


@dataclass(frozen=True)
class SqlActionLogRepository:
    """SQL implementation of ``ActionLogRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, record: ActionRecord, *, agent_id: str, project_id: str) -> None:
        data = record.model_dump(mode="json")
        async with self.session_factory() as s:
            s.add(
                ActionLogRow(
                    id=record.id,
                    session_id=record.session_id,
                    agent_id=agent_id,
                    project_id=project_id,
                    sequence=record.sequence,
                    type=record.type.value,
                    tool_name=record.tool_name,
                    input=data["input"],
                    output=data["output"],
                    tokens_used=record.tokens_used,
                    cost_usd=record.cost_usd,
                    duration_ms=record.duration_ms,
                    error=record.error,
                    error_kind=record.error_kind.value if record.error_kind else None,
                    created_at=record.created_at,
                )
            )
            await s.commit()

    async def list_for_session(self, session_id: str) -> List[ActionRecord]:
        async with self.session_factory() as s:
            stmt = select(ActionLogRow).where(ActionLogRow.session_id == session_id).order_by(ActionLogRow.sequence)
            rows = (await s.execute(stmt)).scalars().all()
            return [
                ActionRecord(
                    id=r.id,
                    session_id=r.session_id,
                    sequence=r.sequence,
                    type=r.type,
                    tool_name=r.tool_name,
                    input=r.input,
                    output=r.output,
                    tokens_used=r.tokens_used,
                    cost_usd=r.cost_usd,
                    duration_ms=r.duration_ms,
                    error=r.error,
                    error_kind=r.error_kind,
                    created_at=_aware(r.created_at),
                )
                for r in rows
            ]


def _approval_from_row(row: ToolApprovalRow) -> ToolApprovalRequest:
    return ToolApprovalRequest(
        id=row.id,
        project_id=row.project_id,
        agent_id=row.agent_id,
        session_id=row.session_id,
        tool_name=row.tool_name,
        input=row.input or {},
        status=ToolApprovalStatus(row.status),
        checkpoint=SessionCheckpoint.model_validate(row.checkpoint),
        workflow_run_id=row.workflow_run_id,
        requested_at=_aware(row.requested_at),
        decided_at=_aware(row.decided_at),
        decided_by=row.decided_by,
        note=row.note,
    )


@dataclass(frozen=True)
class SqlToolApprovalRepository:
    """SQL implementation of ``ToolApprovalRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, request: ToolApprovalRequest) -> None:
        async with self.session_factory() as s:
            s.add(
                ToolApprovalRow(
                    id=request.id,
                    project_id=request.project_id,
                    agent_id=request.agent_id,
                    session_id=request.session_id,
                    tool_name=request.tool_name,
                    input=request.input,
                    status=request.status.value,
                    checkpoint=request.checkpoint.model_dump(mode="json"),
                    workflow_run_id=request.workflow_run_id,
                    requested_at=request.requested_at,
                )
            )
            await s.commit()

    async def get(self, request_id: str) -> Optional[ToolApprovalRequest]:
        async with self.session_factory() as s:
            row = await s.get(ToolApprovalRow, request_id)
            return _approval_from_row(row) if row is not None else None

    async def list_pending(self, project_id: str) -> List[ToolApprovalRequest]:
        async with self.session_factory() as s:
            stmt = (
                select(ToolApprovalRow)
                .where(
                    ToolApprovalRow.project_id == project_id,
                    ToolApprovalRow.status == ToolApprovalStatus.pending.value,
                )
                .order_by(ToolApprovalRow.requested_at)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [_approval_from_row(r) for r in rows]

    async def resolve(
        self,
        request_id: str,
        *,
        status: ToolApprovalStatus,
        decided_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[ToolApprovalRequest]:
        async with self.session_factory() as s:
            result = await s.execute(
                update(ToolApprovalRow)
                .where(
                    ToolApprovalRow.id == request_id,
                    ToolApprovalRow.status == ToolApprovalStatus.pending.value,
                )
                .values(status=status.value, decided_at=_utc_now(), decided_by=decided_by, note=note)
            )
            await s.commit()
            if result.rowcount != 1:
                return None
        return await self.get(request_id)


@dataclass(frozen=True)
class SqlWorkflowRepository:
    """SQL implementation of ``WorkflowRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowRow, workflow_id)
            if row is None:
                return None
            return Workflow(
                id=row.id,
                project_id=row.project_id,
                name=row.name,
                definition=WorkflowDefinition.model_validate(row.definition or {}),
                is_active=row.is_active,
            )

    async def save(self, workflow: Workflow) -> None:
        async with self.session_factory() as s:
            await s.merge(
                WorkflowRow(
                    id=workflow.id,
                    project_id=workflow.project_id,
                    name=workflow.name,
                    definition=workflow.definition.model_dump(mode="json"),
                    is_active=workflow.is_active,
                )
            )
            await s.commit()


def _run_from_row(row: WorkflowRunRow) -> WorkflowRun:
    return WorkflowRun(
        id=row.id,
        workflow_id=row.workflow_id,
        project_id=row.project_id,
        status=row.status,
        variables=row.variables or {},
        outputs={k: NodeOutput.model_validate(v) for k, v in (row.outputs or {}).items()},
        paused_at_node_id=row.paused_at_node_id,
        suspension=Suspend.model_validate(row.suspension) if row.suspension else None,
        error=row.error,
        failure_kind=row.failure_kind,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        completed_at=_aware(row.completed_at),
    )


def _apply_run(row: WorkflowRunRow, run: WorkflowRun) -> None:
    data = run.model_dump(mode="json")
    row.workflow_id = run.workflow_id
    row.project_id = run.project_id
    row.status = run.status.value
    row.variables = data["variables"]
    row.outputs = data["outputs"]
    row.paused_at_node_id = run.paused_at_node_id
    row.suspension = data["suspension"]
    row.error = run.error
    row.failure_kind = run.failure_kind.value if run.failure_kind else None
    row.created_at = run.created_at
    row.updated_at = _utc_now()
    row.completed_at = run.completed_at


@dataclass(frozen=True)
class SqlWorkflowRunRepository:
    """SQL implementation of ``WorkflowRunRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, run: WorkflowRun) -> None:
        async with self.session_factory() as s:
            row = WorkflowRunRow(id=run.id)
            _apply_run(row, run)
            s.add(row)
            await s.commit()

    async def get(self, run_id: str) -> Optional[WorkflowRun]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowRunRow, run_id)
            return _run_from_row(row) if row is not None else None

    async def save(self, run: WorkflowRun) -> None:
        async with self.session_factory() as s:
            row = await s.get(WorkflowRunRow, run.id)
            if row is None:
                row = WorkflowRunRow(id=run.id)
                s.add(row)
            _apply_run(row, run)
            await s.commit()


@dataclass(frozen=True)
class SqlNodeRunRepository:
    """SQL implementation of ``NodeRunRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, workflow_run_id: str, project_id: str, output: NodeOutput) -> None:
        async with self.session_factory() as s:
            s.add(
                WorkflowNodeRunRow(
                    id=str(uuid4()),
                    workflow_run_id=workflow_run_id,
                    project_id=project_id,
                    node_id=output.node_id,
                    node_type=output.node_type,
                    status=output.status.value,
                    output=output.model_dump(mode="json"),
                    completed_at=output.completed_at,
                )
            )
            await s.commit()

    async def list_for_run(self, workflow_run_id: str) -> List[NodeOutput]:
        async with self.session_factory() as s:
            stmt = (
                select(WorkflowNodeRunRow)
                .where(WorkflowNodeRunRow.workflow_run_id == workflow_run_id)
                .order_by(WorkflowNodeRunRow.completed_at)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [NodeOutput.model_validate(r.output) for r in rows]


@dataclass(frozen=True)
class SqlJobQueue:
    """SQL implementation of ``JobQueue`` with delayed delivery."""

    session_factory: async_sessionmaker[AsyncSession]

    async def enqueue(self, job: QueuedJob) -> str:
        async with self.session_factory() as s:
            s.add(
                JobRow(
                    id=job.id,
                    kind=job.kind.value,
                    payload=job.payload,
                    status=JobStatus.pending.value,
                    attempts=job.attempts,
                    run_at=job.run_at,
                    last_error=job.last_error,
                    created_at=job.created_at,
                )
            )
            await s.commit()
        return job.id

    async def claim_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        claimed: List[QueuedJob] = []
        async with self.session_factory() as s:
            stmt = (
                select(JobRow)
                .where(JobRow.status == JobStatus.pending.value, JobRow.run_at <= now)
                .order_by(JobRow.run_at)
                .limit(limit)
            )
            candidates = (await s.execute(stmt)).scalars().all()
            for row in candidates:
                result = await s.execute(
                    update(JobRow)
                    .where(JobRow.id == row.id, JobRow.status == JobStatus.pending.value)
                    .values(status=JobStatus.running.value)
                )
                if result.rowcount == 1:
                    claimed.append(
                        QueuedJob(
                            id=row.id,
                            kind=JobKind(row.kind),
                            payload=row.payload,
                            status=JobStatus.running,
                            attempts=row.attempts,
                            run_at=_aware(row.run_at),
                            last_error=row.last_error,
                            created_at=_aware(row.created_at),
                        )
                    )
            await s.commit()
        return claimed

    async def complete(self, job_id: str) -> None:
        async with self.session_factory() as s:
            await s.execute(update(JobRow).where(JobRow.id == job_id).values(status=JobStatus.done.value))
            await s.commit()

    async def retry(self, job_id: str, *, run_at: datetime, error: str) -> None:
        async with self.session_factory() as s:
            await s.execute(
                update(JobRow)
                .where(JobRow.id == job_id)
                .values(
                    status=JobStatus.pending.value,
                    attempts=JobRow.attempts + 1,
                    run_at=run_at,
                    last_error=error,
                )
            )
            await s.commit()

    async def defer(self, job_id: str, *, run_at: datetime, reason: str) -> None:
        async with self.session_factory() as s:
            await s.execute(
                update(JobRow)
                .where(JobRow.id == job_id)
                .values(status=JobStatus.pending.value, run_at=run_at, last_error=reason)
            )
            await s.commit()

    async def bury(self, job_id: str, *, error: str) -> None:
        async with self.session_factory() as s:
            await s.execute(
                update(JobRow)
                .where(JobRow.id == job_id)
                .values(status=JobStatus.dead.value, attempts=JobRow.attempts + 1, last_error=error)
            )
            await s.commit()


@dataclass(frozen=True)
class SqlRepos:
    agents: SqlAgentRepository
    approval_rules: SqlApprovalRuleRepository
    action_logs: SqlActionLogRepository
    tool_approvals: SqlToolApprovalRepository
    workflows: SqlWorkflowRepository
    workflow_runs: SqlWorkflowRunRepository
    node_runs: SqlNodeRunRepository
    jobs: SqlJobQueue


def build_sql_repos(session_factory: async_sessionmaker[AsyncSession]) -> SqlRepos:
    """Build every SQL repository over one session factory."""
    return SqlRepos(
        agents=SqlAgentRepository(session_factory),
        approval_rules=SqlApprovalRuleRepository(session_factory),
        action_logs=SqlActionLogRepository(session_factory),
        tool_approvals=SqlToolApprovalRepository(session_factory),
        workflows=SqlWorkflowRepository(session_factory),
        workflow_runs=SqlWorkflowRunRepository(session_factory),
        node_runs=SqlNodeRunRepository(session_factory),
        jobs=SqlJobQueue(session_factory),
    )
