from __future__ import annotations

"""Agent execution service.

``AgentExecutionService`` wraps the ``AgenticLoopExecutor`` with everything a
queued agent job needs around one session.

Workflow
--------

- ``execute(job)``:

  1. Loads the agent; an inactive agent is skipped.
  2. Claims the agent (atomic idle -> working). Losing the claim skips a new
     session, but a resume job raises ``AgentBusyError`` so the queue retries
     it: the human decision it carries must not be dropped.
  3. Runs a new session, or resumes a suspended one when the job points at a
     decided tool approval request.
  4. Emits every ``ActionRecord`` to the action log (fire-and-forget).
  5. Persists a ``ToolApprovalRequest`` with the session checkpoint when the
     session suspended.
  6. Releases the agent: ``idle`` after completion or suspension, ``error``
     otherwise. A session ended by a provider failure releases to ``idle`` and
     re-raises ``ProviderError`` so the job queue can retry it.

- ``resolve_tool_approval``: records a human decision and enqueues the resume
  job. Requests raised inside a workflow run are decided through the run.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .capabilities.registry import ToolRegistry
from .errors import AgentBusyError, AgentNotFoundError, InvalidStateError, NotFoundError, ProviderError
from .runtime.context import build_agent_context
from .runtime.engine import AgenticLoopExecutor
from .schemas.domain import (
    AgentExecutionResult,
    AgentProfile,
    AgentStatus,
    ApprovalResolution,
    SafetyLimits,
    SessionStatus,
    ToolApprovalRequest,
    ToolApprovalStatus,
)
from ai_office.repos.interfaces import (
    ActionLogRepository,
    AgentRepository,
    JobQueue,
    ToolApprovalRepository,
)
from ai_office.worker.jobs import AgentJob, QueuedJob

logger = logging.getLogger(__name__)


async def emit_actions(
    sink: Optional[ActionLogRepository],
    result: AgentExecutionResult,
    *,
    agent_id: str,
    project_id: str,
) -> None:
    """Append a session's records to the action log; failures are logged only."""
    if sink is None:
        return
    for record in result.actions:
        try:
            await sink.append(record, agent_id=agent_id, project_id=project_id)
        except Exception:
            logger.warning(
                f"Failed to log action {record.sequence} of session {record.session_id}",
                exc_info=True,
            )


@dataclass(frozen=True)
class AgentServiceDeps:
    """Dependency bundle for ``AgentExecutionService``."""

    agents: AgentRepository
    action_logs: ActionLogRepository
    tool_approvals: ToolApprovalRepository
    jobs: JobQueue
    tools: ToolRegistry
    executor: AgenticLoopExecutor
    default_limits: SafetyLimits = field(default_factory=SafetyLimits)


class AgentExecutionService:
    """Claim, run and release agents for queued agent jobs."""

    def __init__(self, deps: AgentServiceDeps) -> None:
        self._deps = deps

    async def execute(self, job: AgentJob) -> Optional[AgentExecutionResult]:
        """
        Process one agent job.

        Returns:
            The session result, or None when the job was skipped (inactive
            agent or lost claim).

        Raises:
            AgentNotFoundError: the agent does not exist.
            AgentBusyError: a resume job found the agent not idle; retry later.
            ProviderError: the model call failed; the job may be retried.
        """
        agent = await self._deps.agents.get(job.agent_id)
        if agent is None:
            raise AgentNotFoundError(job.agent_id)
        if not agent.is_active:
            logger.info(f"Agent {agent.id} is inactive, skipping")
            return None
        if not await self._deps.agents.claim(agent.id):
            if job.approval_request_id is not None:
                logger.info(f"Agent {agent.id} is not idle, deferring resume of approval {job.approval_request_id}")
                raise AgentBusyError(agent.id)
            logger.info(f"Agent {agent.id} is already working or not idle, skipping")
            return None

        try:
            result = await self._run(agent, job)
            await emit_actions(self._deps.action_logs, result, agent_id=agent.id, project_id=agent.project_id)
            if result.checkpoint is not None:
                request = ToolApprovalRequest.from_checkpoint(result.checkpoint)
                await self._deps.tool_approvals.create(request)
                logger.info(f"Session {result.session.session_id} awaits approval {request.id} for {request.tool_name}")
        except Exception:
            logger.exception(f"Agent job for {agent.id} failed")
            await self._deps.agents.release(agent.id, AgentStatus.error)
            raise

        session = result.session
        logger.info(
            f"Session {session.session_id} finished: status={session.status.value} "
            f"actions={len(result.actions)} tokens={session.total_tokens} "
            f"cost=${session.total_cost_usd:.4f} duration={result.duration_ms}ms"
        )

        provider_failed = session.status == SessionStatus.error
        healthy = result.suspended or session.status == SessionStatus.completed or provider_failed
        await self._deps.agents.release(agent.id, AgentStatus.idle if healthy else AgentStatus.error)

        if provider_failed:
            raise ProviderError(agent.model.provider or "model", session.error or "model call failed")
        return result

    async def _run(self, agent: AgentProfile, job: AgentJob) -> AgentExecutionResult:
        if job.approval_request_id is not None:
            request = await self._deps.tool_approvals.get(job.approval_request_id)
            if request is None:
                raise NotFoundError("Tool approval request", job.approval_request_id)
            if request.resolution is None:
                raise InvalidStateError(f"Tool approval request {request.id} is still pending")
            return await self._deps.executor.resume(request.checkpoint, request.resolution)

        memory = await self._deps.agents.get_memory(agent.id, agent.project_id)
        context = build_agent_context(agent, self._deps.tools, memory, job.trigger_payload)
        return await self._deps.executor.run(context, agent.safety_limits(self._deps.default_limits))

    async def resolve_tool_approval(
        self,
        request_id: str,
        resolution: ApprovalResolution,
        decided_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AgentJob:
        """
        Record a human decision on a suspended tool call and schedule the resume.

        Raises:
            NotFoundError: no such request.
            InvalidStateError: the request was already decided, or it belongs to a
                workflow run (decide it through the run instead).
        """
        existing = await self._deps.tool_approvals.get(request_id)
        if existing is None:
            raise NotFoundError("Tool approval request", request_id)
        if existing.workflow_run_id is not None:
            raise InvalidStateError(
                f"Tool approval request {request_id} belongs to workflow run {existing.workflow_run_id}"
            )
        status = ToolApprovalStatus.approved if resolution == ApprovalResolution.approved else ToolApprovalStatus.rejected
        request = await self._deps.tool_approvals.resolve(request_id, status=status, decided_by=decided_by, note=note)
        if request is None:
            raise InvalidStateError(f"Tool approval request {request_id} was already decided")

        job = AgentJob(agent_id=request.agent_id, project_id=request.project_id, approval_request_id=request.id)
        await self._deps.jobs.enqueue(QueuedJob.for_agent(job))
        logger.info(f"Tool approval {request.id} {resolution.value} by {decided_by}; resume job enqueued")
        return job
