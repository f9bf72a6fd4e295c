from __future__ import annotations

"""Job payloads carried by the persistent job queue.

Every payload is a pydantic model dumped to JSON when enqueued, so a paused run
or a suspended session is resumed from persisted data alone.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import Field

from ai_office.agent_core.schemas.base import BaseSchema, FrozenSchema
from ai_office.workflow.models import ApprovalOutcome, NodeOutput


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    agent_execution = "agent_execution"
    workflow_execution = "workflow_execution"


class JobStatus(str, Enum):
    pending = "pending"
    running = "running"
    done = "done"
    dead = "dead"


class WorkflowJob(FrozenSchema):
    """Start or continue a workflow run.

    A continuation carries the node to resume at and every output produced so
    far; for an approval pause it also carries the human decision.
    """

    workflow_id: str
    workflow_run_id: str
    project_id: str
    variables: Dict[str, str] = Field(default_factory=dict)
    resume_from_node_id: Optional[str] = None
    completed_outputs: Dict[str, NodeOutput] = Field(default_factory=dict)
    approval: Optional[ApprovalOutcome] = None


class AgentJob(FrozenSchema):
    """Run an agent session, or continue one suspended for tool approval."""

    agent_id: str
    project_id: str
    trigger_payload: Optional[Dict[str, Any]] = None
    approval_request_id: Optional[str] = None


class QueuedJob(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    kind: JobKind
    payload: Dict[str, Any]
    status: JobStatus = JobStatus.pending
    attempts: int = 0
    run_at: datetime = Field(default_factory=_utc_now)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def for_workflow(cls, job: WorkflowJob, run_at: Optional[datetime] = None) -> "QueuedJob":
        return cls(
            kind=JobKind.workflow_execution,
            payload=job.model_dump(mode="json"),
            run_at=run_at or _utc_now(),
        )

    @classmethod
    def for_agent(cls, job: AgentJob, run_at: Optional[datetime] = None) -> "QueuedJob":
        return cls(kind=JobKind.agent_execution, payload=job.model_dump(mode="json"), run_at=run_at or _utc_now())

    def workflow_job(self) -> WorkflowJob:
        return WorkflowJob.model_validate(self.payload)

    def agent_job(self) -> AgentJob:
        return AgentJob.model_validate(self.payload)
