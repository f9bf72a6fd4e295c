from __future__ import annotations

"""Workflow run service.

``WorkflowRunService`` connects the ``WorkflowExecutor`` with persistence and
the job queue. A run never blocks a worker while it waits:

- ``start_run`` stores a new run and enqueues its first job.
- ``process`` executes (or resumes) a run for one job and persists the result.
  A delay pause enqueues a continuation job scheduled at the resume time; an
  approval pause enqueues nothing.
- ``resolve_approval`` records a human decision. At an approval node, approval
  enqueues the continuation job and rejection fails the run. At an agent node
  waiting on a tool call, the tool approval request is decided and the
  continuation resumes the session either way; a rejection is reported to the
  model.

Continuation jobs carry the outputs produced so far, so a resumed run sees the
same upstream data however many times it was paused.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional
from uuid import uuid4

from ai_office.agent_core.errors import (
    FailureKind,
    InvalidStateError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
    WorkflowRunNotFoundError,
    describe_failure,
)
from ai_office.agent_core.schemas.domain import ToolApprovalStatus
from ai_office.repos.interfaces import JobQueue, ToolApprovalRepository, WorkflowRepository, WorkflowRunRepository
from ai_office.worker.jobs import QueuedJob, WorkflowJob

from .executor import WorkflowExecutor
from .models import (
    ApprovalOutcome,
    DelayResumeInfo,
    NodeOutput,
    NodeStatus,
    NodeType,
    PauseReason,
    RunStatus,
    ToolApprovalResumeInfo,
    WorkflowExecutionResult,
    WorkflowRun,
    WorkflowRunContext,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WorkflowServiceDeps:
    """Dependency bundle for ``WorkflowRunService``."""

    workflows: WorkflowRepository
    runs: WorkflowRunRepository
    jobs: JobQueue
    executor: WorkflowExecutor
    tool_approvals: Optional[ToolApprovalRepository] = None


class WorkflowRunService:
    def __init__(self, deps: WorkflowServiceDeps, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._deps = deps
        self._clock = clock

    async def start_run(
        self,
        workflow_id: str,
        project_id: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> WorkflowRun:
        """
        Create a run and enqueue its first job.

        Raises:
            WorkflowNotFoundError: unknown workflow, or one of another project.
            InvalidStateError: the workflow is inactive.
        """
        workflow = await self._deps.workflows.get(workflow_id)
        if workflow is None or (project_id is not None and workflow.project_id != project_id):
            raise WorkflowNotFoundError(workflow_id)
        if not workflow.is_active:
            raise InvalidStateError(f"Workflow {workflow_id} is inactive")

        run = WorkflowRun(
            id=str(uuid4()),
            workflow_id=workflow.id,
            project_id=workflow.project_id,
            variables=workflow.definition.resolve_variables(variables),
        )
        await self._deps.runs.create(run)
        job = WorkflowJob(
            workflow_id=workflow.id,
            workflow_run_id=run.id,
            project_id=run.project_id,
            variables=run.variables,
        )
        await self._deps.jobs.enqueue(QueuedJob.for_workflow(job))
        logger.info(f"Started run {run.id} of workflow {workflow.id}")
        return run

    async def get_run(self, run_id: str) -> WorkflowRun:
        run = await self._deps.runs.get(run_id)
        if run is None:
            raise WorkflowRunNotFoundError(run_id)
        return run

    async def process(self, job: WorkflowJob) -> WorkflowRun:
        """
        Execute or resume the run a job points at, and persist the outcome.

        Jobs for finished runs, and continuations that no longer match the
        node the run is paused at, are skipped.
        """
        run = await self.get_run(job.workflow_run_id)
        if run.status in (RunStatus.completed, RunStatus.failed):
            logger.info(f"Run {run.id} is already {run.status.value}, skipping job")
            return run
        if job.resume_from_node_id is not None and (
            run.status != RunStatus.paused or run.paused_at_node_id != job.resume_from_node_id
        ):
            logger.info(f"Stale continuation for run {run.id} at node {job.resume_from_node_id}, skipping")
            return run

        workflow = await self._deps.workflows.get(job.workflow_id)
        if workflow is None:
            error = describe_failure(FailureKind.configuration, f"Workflow not found: {job.workflow_id}")
            return await self._fail(run, error, FailureKind.configuration)

        run.status = RunStatus.running
        run.paused_at_node_id = None
        run.suspension = None
        await self._deps.runs.save(run)

        ctx = WorkflowRunContext(
            workflow_id=workflow.id,
            workflow_run_id=run.id,
            project_id=run.project_id,
            variables=job.variables or run.variables,
        )
        try:
            result = await self._deps.executor.execute(
                workflow.definition,
                ctx,
                resume_from_node_id=job.resume_from_node_id,
                existing_outputs=job.completed_outputs,
                approval=job.approval,
            )
        except WorkflowDefinitionError as e:
            logger.warning(f"Run {run.id} cannot start: {e}")
            return await self._fail(run, e.reason, e.kind)

        await self._apply(run, result)
        if result.status == RunStatus.paused and isinstance(result.suspension.resume_info, DelayResumeInfo):
            continuation = WorkflowJob(
                workflow_id=workflow.id,
                workflow_run_id=run.id,
                project_id=run.project_id,
                variables=ctx.variables,
                resume_from_node_id=result.paused_at_node_id,
                completed_outputs=result.outputs,
            )
            resume_at = result.suspension.resume_info.resume_at
            await self._deps.jobs.enqueue(QueuedJob.for_workflow(continuation, run_at=resume_at))
            logger.info(f"Run {run.id} continues at {resume_at.isoformat()}")
        return run

    async def resolve_approval(
        self,
        run_id: str,
        approved: bool,
        decided_by: Optional[str] = None,
        note: Optional[str] = None,
        approval_request_id: Optional[str] = None,
    ) -> WorkflowRun:
        """
        Apply a human decision to a run paused for approval.

        ``approval_request_id``, when given, must name the tool approval request
        the run waits on.

        Raises:
            WorkflowRunNotFoundError: unknown run.
            InvalidStateError: the run is not waiting for an approval, or its
                tool approval request was already decided.
        """
        run = await self.get_run(run_id)
        if run.status != RunStatus.paused or run.pause_reason != PauseReason.approval:
            raise InvalidStateError(f"Run {run_id} is not waiting for an approval")

        node_id = run.paused_at_node_id
        info = run.suspension.resume_info
        if approval_request_id is not None and (
            not isinstance(info, ToolApprovalResumeInfo) or info.approval_request_id != approval_request_id
        ):
            raise InvalidStateError(f"Run {run_id} is not waiting on tool approval {approval_request_id}")
        request_id = None
        if isinstance(info, ToolApprovalResumeInfo):
            request_id = await self._decide_tool_call(run, info, approved, decided_by, note)

        outcome = ApprovalOutcome(
            approved=approved,
            request_id=request_id,
            decided_by=decided_by,
            note=note,
            decided_at=self._clock(),
        )
        if approved or request_id is not None:
            await self._continue_after_decision(run, outcome)
            return run

        who = decided_by or "reviewer"
        detail = f"Approval node {node_id} rejected by {who}"
        run.outputs = {
            **run.outputs,
            node_id: NodeOutput(
                node_id=node_id,
                node_type=NodeType.approval.value,
                status=NodeStatus.failed,
                data={
                    "approved": False,
                    "decided_by": decided_by,
                    "note": note,
                    "error": detail,
                    "failure_kind": FailureKind.rejected.value,
                },
            ),
        }
        return await self._fail(run, describe_failure(FailureKind.rejected, detail), FailureKind.rejected)

    async def _decide_tool_call(
        self,
        run: WorkflowRun,
        info: ToolApprovalResumeInfo,
        approved: bool,
        decided_by: Optional[str],
        note: Optional[str],
    ) -> str:
        if self._deps.tool_approvals is None:
            raise InvalidStateError(f"Run {run.id} waits on a tool approval but no approval store is configured")
        status = ToolApprovalStatus.approved if approved else ToolApprovalStatus.rejected
        request = await self._deps.tool_approvals.resolve(
            info.approval_request_id, status=status, decided_by=decided_by, note=note
        )
        if request is None:
            raise InvalidStateError(f"Tool approval request {info.approval_request_id} was already decided")
        return request.id

    async def _continue_after_decision(self, run: WorkflowRun, outcome: ApprovalOutcome) -> None:
        node_id = run.paused_at_node_id
        job = WorkflowJob(
            workflow_id=run.workflow_id,
            workflow_run_id=run.id,
            project_id=run.project_id,
            variables=run.variables,
            resume_from_node_id=node_id,
            completed_outputs=run.outputs,
            approval=outcome,
        )
        await self._deps.jobs.enqueue(QueuedJob.for_workflow(job))
        verdict = "approved" if outcome.approved else "rejected"
        logger.info(f"Run {run.id} {verdict} at node {node_id} by {outcome.decided_by}; continuation enqueued")

    async def _apply(self, run: WorkflowRun, result: WorkflowExecutionResult) -> None:
        run.status = result.status
        run.outputs = dict(result.outputs)
        run.paused_at_node_id = result.paused_at_node_id
        run.suspension = result.suspension
        run.error = result.error
        run.failure_kind = result.failure_kind
        if result.status in (RunStatus.completed, RunStatus.failed):
            run.completed_at = self._clock()
        await self._deps.runs.save(run)
        logger.info(f"Run {run.id} is {run.status.value}")

    async def _fail(self, run: WorkflowRun, error: str, kind: FailureKind) -> WorkflowRun:
        run.status = RunStatus.failed
        run.paused_at_node_id = None
        run.suspension = None
        run.error = error
        run.failure_kind = kind
        run.completed_at = self._clock()
        await self._deps.runs.save(run)
        logger.info(f"Run {run.id} failed: {error}")
        return run
