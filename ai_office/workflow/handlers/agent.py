from __future__ import annotations

"""Agent node: runs one agent session inside a workflow run."""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from ai_office.agent_core.capabilities.registry import ToolRegistry
from ai_office.agent_core.errors import FailureKind
from ai_office.agent_core.runtime.context import build_agent_context
from ai_office.agent_core.runtime.engine import AgenticLoopExecutor
from ai_office.agent_core.schemas.domain import (
    AgentExecutionResult,
    AgentProfile,
    AgentSession,
    SafetyLimits,
    SessionStatus,
    ToolApprovalRequest,
)
from ai_office.agent_core.service import emit_actions
from ai_office.repos.interfaces import ActionLogRepository, AgentRepository, ToolApprovalRepository

from ..models import AgentNodeConfig, HandlerResult, NodeInput, NodeType, Suspend, WorkflowRunContext
from ..templating import resolve_template
from .base import completed, failed, upstream_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentNodeHandler:
    """
    Run the configured agent with the run's variables and upstream outputs as
    its trigger payload.

    The node completes only when the session completes. A session that stops
    on a tool call awaiting approval suspends the node: the checkpoint is
    stored as a ``ToolApprovalRequest`` tied to the run, and the continuation
    carrying the decision resumes that session instead of starting a new one.
    """

    node_type: ClassVar[NodeType] = NodeType.agent
    agents: AgentRepository
    tools: ToolRegistry
    executor: AgenticLoopExecutor
    tool_approvals: ToolApprovalRepository
    default_limits: SafetyLimits = field(default_factory=SafetyLimits)
    action_logs: Optional[ActionLogRepository] = None

    async def execute(self, config: AgentNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        agent = await self.agents.get(config.agent_id)
        if agent is None:
            return failed(input, self.node_type, f"Agent not found: {config.agent_id}", FailureKind.configuration)

        decision = input.approval if input.resumed else None
        if decision is not None and decision.request_id is not None:
            request = await self.tool_approvals.get(decision.request_id)
            if request is None or request.resolution is None:
                return failed(
                    input,
                    self.node_type,
                    f"Tool approval request {decision.request_id} is missing or undecided",
                    FailureKind.configuration,
                )
            logger.info(
                f"Run {ctx.workflow_run_id} node {input.node_id}: resuming session {request.session_id} "
                f"({request.tool_name} {request.resolution.value})"
            )
            result = await self.executor.resume(request.checkpoint, request.resolution)
        else:
            payload: Dict[str, Any] = {
                "workflowRunId": ctx.workflow_run_id,
                "variables": dict(ctx.variables),
                "upstreamOutputs": upstream_data(input.upstream_outputs),
            }
            if config.prompt_template:
                payload["prompt"] = resolve_template(config.prompt_template, input.variables)

            memory = await self.agents.get_memory(agent.id, ctx.project_id)
            context = build_agent_context(agent, self.tools, memory, payload)
            session = AgentSession(agent_id=agent.id, project_id=ctx.project_id)
            logger.info(f"Run {ctx.workflow_run_id} node {input.node_id}: starting agent {agent.id}")
            result = await self.executor.run(context, agent.safety_limits(self.default_limits), session)

        await emit_actions(self.action_logs, result, agent_id=agent.id, project_id=ctx.project_id)
        return await self._to_node_result(config, agent, input, ctx, result)

    async def _to_node_result(
        self,
        config: AgentNodeConfig,
        agent: AgentProfile,
        input: NodeInput,
        ctx: WorkflowRunContext,
        result: AgentExecutionResult,
    ) -> HandlerResult:
        if result.checkpoint is not None:
            request = ToolApprovalRequest.from_checkpoint(result.checkpoint, workflow_run_id=ctx.workflow_run_id)
            await self.tool_approvals.create(request)
            logger.info(
                f"Run {ctx.workflow_run_id} node {input.node_id}: {request.tool_name} awaits approval {request.id}"
            )
            return Suspend.for_tool_approval(
                input.node_id,
                approval_request_id=request.id,
                agent_id=agent.id,
                tool_name=request.tool_name,
            )

        session = result.session
        data: Dict[str, Any] = {
            "agent_id": agent.id,
            "agent_name": config.agent_name or agent.name,
            "session_id": session.session_id,
            "session_status": session.status.value,
            "total_tokens": session.total_tokens,
            "total_cost_usd": session.total_cost_usd,
            "duration_ms": result.duration_ms,
            "actions_count": len(result.actions),
        }
        if session.status != SessionStatus.completed:
            detail = session.abort_reason or session.error or session.status.value
            if session.abort_reason and session.error:
                detail = f"{session.abort_reason}: {session.error}"
            return failed(
                input,
                self.node_type,
                f"Agent {agent.id} session ended {session.status.value}: {detail}",
                result.failure_kind or FailureKind.tool,
                response=result.final_response,
                **data,
            )
        return completed(input, self.node_type, data, response=result.final_response)
