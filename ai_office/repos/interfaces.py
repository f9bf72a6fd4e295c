from __future__ import annotations

"""Repository interface contracts.

The agent engine, the workflow orchestrator and the worker depend on these
Protocols instead of concrete persistence implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak SQLAlchemy sessions/transactions to callers.
- Log-style repositories (action log, node runs) are append-only and are used
  as fire-and-forget sinks: callers log and swallow their failures.
- State transitions that two processes may race on (agent claim, approval
  resolution, job claim) are single conditional updates.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ai_office.agent_core.schemas.domain import (
    ActionRecord,
    AgentProfile,
    AgentStatus,
    ApprovalDecision,
    ApprovalRule,
    ToolApprovalRequest,
    ToolApprovalStatus,
)
from ai_office.worker.jobs import QueuedJob
from ai_office.workflow.models import NodeOutput, Workflow, WorkflowRun


class AgentRepository(Protocol):
    """Agent registry lookup, agent memory and the per-agent claim."""

    async def get(self, agent_id: str) -> Optional[AgentProfile]:
        """Return the agent's configuration, or None when it does not exist."""
        ...

    async def save(self, agent: AgentProfile) -> None: ...

    async def get_memory(self, agent_id: str, project_id: str) -> Dict[str, Any]:
        """Return the agent's persisted key/value memory."""
        ...

    async def set_memory(self, agent_id: str, project_id: str, key: str, value: Any) -> None: ...

    async def claim(self, agent_id: str) -> bool:
        """
        Atomically move an active agent from ``idle`` to ``working``.

        Returns:
            True if this caller won the claim; False if the agent was not idle,
            inactive or unknown. Losing a claim is not an error.
        """
        ...

    async def release(self, agent_id: str, status: AgentStatus) -> None:
        """Set the agent's status after a session (``idle`` or ``error``)."""
        ...


class ApprovalRuleRepository(Protocol):
    async def lookup(self, project_id: str, agent_id: str, tool_name: str) -> Optional[ApprovalDecision]:
        """Return the stored decision for the triple, or None when no rule exists."""
        ...

    async def upsert(self, rule: ApprovalRule) -> None: ...


class ActionLogRepository(Protocol):
    async def append(self, record: ActionRecord, *, agent_id: str, project_id: str) -> None:
        """Durably record one action (append-only)."""
        ...

    async def list_for_session(self, session_id: str) -> List[ActionRecord]: ...


class ToolApprovalRepository(Protocol):
    """Tool calls waiting for a human decision, with their session checkpoints."""

    async def create(self, request: ToolApprovalRequest) -> None: ...

    async def get(self, request_id: str) -> Optional[ToolApprovalRequest]: ...

    async def list_pending(self, project_id: str) -> List[ToolApprovalRequest]: ...

    async def resolve(
        self,
        request_id: str,
        *,
        status: ToolApprovalStatus,
        decided_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[ToolApprovalRequest]:
        """
        Record a decision on a pending request.

        Returns:
            The updated request, or None if it does not exist or was already decided.
        """
        ...


class WorkflowRepository(Protocol):
    async def get(self, workflow_id: str) -> Optional[Workflow]: ...

    async def save(self, workflow: Workflow) -> None: ...


class WorkflowRunRepository(Protocol):
    async def create(self, run: WorkflowRun) -> None: ...

    async def get(self, run_id: str) -> Optional[WorkflowRun]: ...

    async def save(self, run: WorkflowRun) -> None:
        """Persist the full run state (status, outputs, suspension, error)."""
        ...


class NodeRunRepository(Protocol):
    async def append(self, workflow_run_id: str, project_id: str, output: NodeOutput) -> None:
        """Durably record one node output (append-only)."""
        ...

    async def list_for_run(self, workflow_run_id: str) -> List[NodeOutput]: ...


class JobQueue(Protocol):
    """Persistent job queue with delayed delivery."""

    async def enqueue(self, job: QueuedJob) -> str:
        """Store a job; it becomes due at ``job.run_at``."""
        ...

    async def claim_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        """Atomically mark up to ``limit`` due pending jobs as running and return them."""
        ...

    async def complete(self, job_id: str) -> None: ...

    async def retry(self, job_id: str, *, run_at: datetime, error: str) -> None:
        """Put a job back to pending with an incremented attempt count."""
        ...

    async def defer(self, job_id: str, *, run_at: datetime, reason: str) -> None:
        """Put a job back to pending without counting an attempt."""
        ...

    async def bury(self, job_id: str, *, error: str) -> None:
        """Mark a job dead after its last failed attempt."""
        ...
