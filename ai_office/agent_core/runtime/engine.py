from __future__ import annotations

"""LangGraph runtime for agent sessions.

``AgenticLoopExecutor`` drives one ``AgentSession``: it alternates model calls
and tool invocations under the ``SafetyGovernor`` until the session completes,
aborts, fails, or suspends for a human decision.

Execution model
--------------

The loop is a LangGraph state machine over a mutable ``_LoopState``::

    START -> guard -> call_model -> run_tools -> guard -> ...
                 \\            \\            \\
                  +-> finish <-+------------+-> END

- ``guard`` asks the governor whether another iteration may run.
- ``call_model`` sends the conversation and the agent's tool specs to the
  model. A response without tool calls is the only success terminal.
- ``run_tools`` runs the requested tool calls one by one through the
  ``ToolInvoker``, re-checking the governor after every call.

Records and accounting
----------------------

Every iteration appends at least one ``ActionRecord``: a ``model_call`` record
for a final (or truncated) response, otherwise one ``tool_call`` record per
requested call. The model call's tokens and cost are attached to the first
tool-call record of its batch, so the session totals always equal the sum of
its records.

Pause/resume
------------

When a tool call requires approval the loop stops without closing the session
and returns a ``SessionCheckpoint`` holding the pending call, the calls queued
behind it and the results already produced for the turn. ``resume`` rebuilds
the state from the checkpoint in any process and continues with the pending
call approved or rejected.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from langgraph.graph import END, START, StateGraph

from ..capabilities.base import ToolExecutionContext, tool_spec
from ..errors import ApprovalRequired, FailureKind, InvalidStateError, ProviderError
from ..policy.models import Abort
from ..schemas.domain import (
    ActionErrorKind,
    ActionRecord,
    ActionType,
    AgentContext,
    AgentExecutionResult,
    AgentSession,
    ApprovalResolution,
    PendingToolCall,
    SafetyLimits,
    SessionCheckpoint,
    SessionStatus,
)
from ..schemas.messages import ChatMessage, ToolResultBlock
from .context import build_initial_messages, truncate_tool_result
from .models import LoopDeps, _LoopState

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgenticLoopExecutor:
    """Run agent sessions with safety limits, approvals and tool accounting.

    Args:
        deps: model client, tool registry, invoker, governor and tool deps.
        clock: returns the current UTC time; used for pause accounting.
    """

    def __init__(self, deps: LoopDeps, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._deps = deps
        self._clock = clock
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_LoopState)
        g.add_node("guard", self._node_guard)
        g.add_node("call_model", self._node_call_model)
        g.add_node("run_tools", self._node_run_tools)
        g.add_node("finish", self._node_finish)

        g.add_conditional_edges(START, self._route_entry, {"guard": "guard", "run_tools": "run_tools"})
        g.add_conditional_edges("guard", self._route_step, {"continue": "call_model", "finish": "finish"})
        g.add_conditional_edges("call_model", self._route_step, {"continue": "run_tools", "finish": "finish"})
        g.add_conditional_edges("run_tools", self._route_step, {"continue": "guard", "finish": "finish"})
        g.add_edge("finish", END)
        return g.compile()

    async def run(
        self,
        context: AgentContext,
        limits: SafetyLimits,
        session: Optional[AgentSession] = None,
    ) -> AgentExecutionResult:
        """Start a session and run it to a terminal status or a suspension."""
        session = session or AgentSession(agent_id=context.agent.id, project_id=context.agent.project_id)
        if not session.is_running:
            raise InvalidStateError(f"Session {session.session_id} is {session.status.value}")

        logger.info(
            f"Starting session {session.session_id} for agent {context.agent.id} "
            f"with {len(context.tool_names)} tools"
        )
        state: _LoopState = {
            "session": session,
            "limits": limits,
            "agent": context.agent,
            "system_prompt": context.system_prompt,
            "tool_names": list(context.tool_names),
            "messages": build_initial_messages(context),
            "actions": [],
            "pending": [],
            "tool_results": [],
            "carry_tokens": 0,
            "carry_cost_usd": 0.0,
            "next_sequence": 0,
        }
        return await self._invoke(state)

    async def resume(self, checkpoint: SessionCheckpoint, resolution: ApprovalResolution) -> AgentExecutionResult:
        """Continue a suspended session after a human decision.

        ``approved`` re-invokes the pending call without consulting the gate
        again; ``rejected`` records a failed call and reports the rejection to
        the model. The queued calls of the same turn run afterwards.
        """
        session = AgentSession.model_validate(checkpoint.session.model_dump())
        if not session.is_running:
            raise InvalidStateError(f"Session {session.session_id} is {session.status.value}")
        suspended_ms = int((self._clock() - checkpoint.suspended_at).total_seconds() * 1000)
        session.paused_ms = session.paused_ms + max(0, suspended_ms)

        pending = checkpoint.pending
        logger.info(
            f"Resuming session {session.session_id}: tool {pending.tool_name} {resolution.value} "
            f"after {max(0, suspended_ms)}ms"
        )
        state: _LoopState = {
            "session": session,
            "limits": checkpoint.limits,
            "agent": checkpoint.agent,
            "system_prompt": checkpoint.system_prompt,
            "tool_names": list(checkpoint.tool_names),
            "messages": list(checkpoint.messages),
            "actions": [],
            "pending": [pending, *checkpoint.queued],
            "tool_results": list(checkpoint.tool_results),
            "carry_tokens": checkpoint.carry_tokens,
            "carry_cost_usd": checkpoint.carry_cost_usd,
            "next_sequence": checkpoint.next_sequence,
        }
        if resolution == ApprovalResolution.approved:
            state["_approved_call_id"] = pending.tool_use_id
        else:
            state["_rejected_call_id"] = pending.tool_use_id
        return await self._invoke(state)

    async def _invoke(self, state: _LoopState) -> AgentExecutionResult:
        limits = state["limits"]
        config = {"recursion_limit": limits.max_actions_per_session * 4 + 10}
        final = await self._graph.ainvoke(state, config=config)
        session: AgentSession = final["session"]
        failure_kind: Optional[FailureKind] = None
        if session.status == SessionStatus.error:
            failure_kind = FailureKind.provider
        elif session.status == SessionStatus.aborted:
            failure_kind = FailureKind.safety_limit
        return AgentExecutionResult(
            session=session,
            actions=final["actions"],
            final_response=final.get("final_response"),
            checkpoint=final.get("checkpoint"),
            failure_kind=failure_kind,
        )

    async def _node_guard(self, state: _LoopState) -> _LoopState:
        """Stop the session when the governor trips a limit."""
        if self._enforce_limits(state):
            state["_done"] = True
        return state

    async def _node_call_model(self, state: _LoopState) -> _LoopState:
        """Call the model once and queue the tool calls it requests."""
        session = state["session"]
        agent = state["agent"]
        specs = [tool_spec(t) for t in self._deps.tools.get_by_names(state["tool_names"])]

        started = self._clock()
        try:
            response = await self._deps.model_client.call(
                agent.model, state["system_prompt"], state["messages"], specs or None
            )
        except ProviderError as e:
            logger.warning(f"Model call failed in session {session.session_id}: {e}")
            session.close(SessionStatus.error, error=e.reason)
            state["_done"] = True
            return state
        except Exception as e:
            logger.warning(f"Model call failed in session {session.session_id}: {e}", exc_info=True)
            err = ProviderError(agent.model.provider or "model", f"{type(e).__name__}: {e}")
            session.close(SessionStatus.error, error=err.reason)
            state["_done"] = True
            return state
        duration_ms = max(0, int((self._clock() - started).total_seconds() * 1000))

        state["messages"].append(ChatMessage(role="assistant", content=list(response.content)))
        text = response.text()
        if text:
            state["final_response"] = text
        logger.debug(
            f"Model responded in session {session.session_id}: stop_reason={response.stop_reason} "
            f"tokens={response.total_tokens} tool_calls={len(response.tool_uses())}"
        )

        if response.stop_reason == "max_tokens":
            self._append(
                state,
                ActionRecord(
                    session_id=session.session_id,
                    sequence=state["next_sequence"],
                    type=ActionType.model_call,
                    output=text or None,
                    tokens_used=response.total_tokens,
                    cost_usd=response.cost_usd,
                    duration_ms=duration_ms,
                    error="Model response was truncated by the output-token limit",
                ),
            )
            session.close(SessionStatus.aborted, abort_reason="response_truncated")
            logger.info(f"Session {session.session_id} aborted: response_truncated")
            state["_done"] = True
            return state

        tool_uses = response.tool_uses()
        if not tool_uses:
            self._append(
                state,
                ActionRecord(
                    session_id=session.session_id,
                    sequence=state["next_sequence"],
                    type=ActionType.model_call,
                    output=text,
                    tokens_used=response.total_tokens,
                    cost_usd=response.cost_usd,
                    duration_ms=duration_ms,
                ),
            )
            session.close(SessionStatus.completed)
            logger.info(
                f"Session {session.session_id} completed: actions={session.action_count} "
                f"tokens={session.total_tokens} cost=${session.total_cost_usd:.4f}"
            )
            state["_done"] = True
            return state

        state["pending"] = [PendingToolCall(tool_use_id=u.id, tool_name=u.name, input=dict(u.input)) for u in tool_uses]
        state["tool_results"] = []
        state["carry_tokens"] = response.total_tokens
        state["carry_cost_usd"] = response.cost_usd
        return state

    async def _node_run_tools(self, state: _LoopState) -> _LoopState:
        """Run the queued tool calls of the current turn, in order."""
        session = state["session"]
        agent = state["agent"]
        ctx = ToolExecutionContext(
            session_id=session.session_id,
            agent_id=session.agent_id,
            project_id=session.project_id,
            tool_call_min_interval_ms=state["limits"].tool_call_min_interval_ms,
            deps=self._deps.tool_deps,
        )

        while state["pending"]:
            call = state["pending"][0]
            outcome = await self._run_call(state, call, ctx)
            if isinstance(outcome, ApprovalRequired):
                state["checkpoint"] = SessionCheckpoint(
                    session=session,
                    limits=state["limits"],
                    agent=agent,
                    system_prompt=state["system_prompt"],
                    tool_names=state["tool_names"],
                    messages=state["messages"],
                    pending=call,
                    queued=state["pending"][1:],
                    tool_results=state["tool_results"],
                    carry_tokens=state["carry_tokens"],
                    carry_cost_usd=state["carry_cost_usd"],
                    next_sequence=state["next_sequence"],
                    suspended_at=self._clock(),
                )
                logger.info(f"Session {session.session_id} suspended: {outcome}")
                state["_done"] = True
                return state

            state["pending"] = state["pending"][1:]
            record = self._append(state, outcome)
            state["tool_results"].append(
                ToolResultBlock(
                    tool_use_id=call.tool_use_id,
                    content=truncate_tool_result(record.error if record.failed else record.output),
                    is_error=record.failed,
                )
            )
            if self._enforce_limits(state):
                state["_done"] = True
                return state

        state["messages"].append(ChatMessage(role="user", content=list(state["tool_results"])))
        state["tool_results"] = []
        return state

    async def _node_finish(self, state: _LoopState) -> _LoopState:
        """Drop per-session invoker state once the session ends or suspends."""
        self._deps.invoker.forget(state["session"].session_id)
        return state

    def _route_entry(self, state: _LoopState) -> str:
        return "run_tools" if state.get("pending") else "guard"

    def _route_step(self, state: _LoopState) -> str:
        return "finish" if state.get("_done") else "continue"

    async def _run_call(self, state: _LoopState, call: PendingToolCall, ctx: ToolExecutionContext):
        session = state["session"]
        sequence = state["next_sequence"]

        if call.tool_use_id == state.get("_rejected_call_id"):
            state["_rejected_call_id"] = None
            logger.info(f"Tool {call.tool_name} rejected by reviewer in session {session.session_id}")
            return ActionRecord(
                session_id=session.session_id,
                sequence=sequence,
                type=ActionType.tool_call,
                tool_name=call.tool_name,
                input=dict(call.input),
                error=f"Tool call '{call.tool_name}' was rejected by a human reviewer",
                error_kind=ActionErrorKind.rejected,
            )

        tool = self._deps.tools.find(call.tool_name)
        if tool is None or call.tool_name not in state["tool_names"]:
            logger.info(f"Model requested unknown tool {call.tool_name} in session {session.session_id}")
            return ActionRecord(
                session_id=session.session_id,
                sequence=sequence,
                type=ActionType.tool_call,
                tool_name=call.tool_name,
                input=dict(call.input),
                error=f"Unknown tool: {call.tool_name}",
                error_kind=ActionErrorKind.unknown_tool,
            )

        approved = call.tool_use_id == state.get("_approved_call_id")
        if approved:
            state["_approved_call_id"] = None
        return await self._deps.invoker.invoke(tool, call.input, ctx, sequence=sequence, approved=approved)

    def _append(self, state: _LoopState, record: ActionRecord) -> ActionRecord:
        """Attach carried model usage, then record the action on the session."""
        if state["carry_tokens"] or state["carry_cost_usd"]:
            record = record.model_copy(
                update={
                    "tokens_used": record.tokens_used + state["carry_tokens"],
                    "cost_usd": record.cost_usd + state["carry_cost_usd"],
                }
            )
            state["carry_tokens"] = 0
            state["carry_cost_usd"] = 0.0
        state["session"].record(record)
        state["actions"].append(record)
        state["next_sequence"] = record.sequence + 1
        return record

    def _enforce_limits(self, state: _LoopState) -> bool:
        """Close the session when a limit trips; return True if it stopped."""
        session = state["session"]
        verdict = self._deps.governor.evaluate(session, state["limits"])
        if isinstance(verdict, Abort):
            session.close(SessionStatus.aborted, abort_reason=verdict.reason.value, error=verdict.detail)
            return True
        return False

