from __future__ import annotations

from typing import Any, Dict, Optional

import pytest

from ai_office.agent_core.capabilities.invoker import ToolInvoker
from ai_office.agent_core.capabilities.registry import ToolRegistry
from ai_office.agent_core.errors import FailureKind, InvalidStateError, ProviderError
from ai_office.agent_core.policy.approval_gate import ApprovalGate
from ai_office.agent_core.runtime import AgenticLoopExecutor, LoopDeps
from ai_office.agent_core.runtime.context import MAX_TOOL_RESULT_CHARS, TRUNCATION_SUFFIX, build_agent_context
from ai_office.agent_core.schemas.domain import (
    AbortReason,
    ActionErrorKind,
    ActionType,
    AgentProfile,
    AgentSession,
    ApprovalResolution,
    SafetyLimits,
    SessionCheckpoint,
    SessionStatus,
)

pytestmark = pytest.mark.asyncio


async def _no_sleep(seconds: float) -> None:
    return None


def _executor(repos, model_client, *tools, clock=None) -> AgenticLoopExecutor:
    registry = ToolRegistry(tools)
    invoker = ToolInvoker(ApprovalGate(repos.approval_rules, registry), sleep=_no_sleep)
    deps = LoopDeps(model_client=model_client, tools=registry, invoker=invoker)
    if clock is None:
        return AgenticLoopExecutor(deps)
    return AgenticLoopExecutor(deps, clock=clock)


def _context(agent: AgentProfile, *tools, memory: Optional[Dict[str, Any]] = None, payload=None):
    return build_agent_context(agent, ToolRegistry(tools), memory, payload)


LIMITS = SafetyLimits()


async def test_final_text_completes_session(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(responses.text("All done"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert result.session.status == SessionStatus.completed
    assert result.final_response == "All done"
    assert [a.type for a in result.actions] == [ActionType.model_call]
    assert result.actions[0].tokens_used == 15
    assert result.session.total_tokens == 15
    assert result.failure_kind is None
    assert model_client.calls[0]["tools"][0].name == "echo"


async def test_max_actions_aborts_after_limit(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    for i in range(5):
        model_client.push(responses.tools((f"t{i}", "echo", {"text": str(i)})))

    limits = SafetyLimits(max_actions_per_session=3)
    result = await _executor(repos, model_client, tool).run(_context(agent, tool), limits)

    assert result.session.status == SessionStatus.aborted
    assert result.session.abort_reason == AbortReason.max_actions_exceeded.value
    assert result.failure_kind == FailureKind.safety_limit
    assert len(result.actions) == 3
    assert [a.sequence for a in result.actions] == [0, 1, 2]
    assert len(tool.calls) == 3
    assert len(model_client.calls) == 3


async def test_session_totals_equal_sum_of_records(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(responses.tools(("t1", "echo", {"text": "a"})), responses.text("ok"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert [a.tokens_used for a in result.actions] == [30, 15]
    assert result.session.total_tokens == sum(a.tokens_used for a in result.actions) == 45
    assert result.session.total_cost_usd == pytest.approx(sum(a.cost_usd for a in result.actions))
    assert result.session.action_count == len(result.actions)


async def test_provider_error_ends_session_with_error(repos, model_client, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(ProviderError("anthropic", "overloaded"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert result.session.status == SessionStatus.error
    assert "overloaded" in result.session.error
    assert result.failure_kind == FailureKind.provider
    assert result.actions == []


async def test_unexpected_model_exception_is_provider_failure(repos, model_client, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(ConnectionError("reset by peer"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert result.session.status == SessionStatus.error
    assert "ConnectionError" in result.session.error


async def test_truncated_model_response_aborts(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(responses.text("half an ans", stop_reason="max_tokens"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert result.session.status == SessionStatus.aborted
    assert result.session.abort_reason == AbortReason.response_truncated.value
    assert result.actions[0].type == ActionType.model_call
    assert result.actions[0].error is not None


async def test_unknown_tool_is_recorded_and_reported(repos, model_client, responses, make_tool) -> None:
    echo = make_tool("echo")
    hidden = make_tool("hidden")
    agent = AgentProfile(id="agent-1", project_id="project-1", name="Ada", tools=["echo"])
    model_client.push(
        responses.tools(("t1", "nope", {}), ("t2", "hidden", {})),
        responses.text("sorry"),
    )

    result = await _executor(repos, model_client, echo, hidden).run(_context(agent, echo, hidden), LIMITS)

    assert result.session.status == SessionStatus.completed
    assert [a.error_kind for a in result.actions[:2]] == [ActionErrorKind.unknown_tool, ActionErrorKind.unknown_tool]
    assert hidden.calls == []
    tool_results = model_client.calls[1]["messages"][-1].content
    assert [r.tool_use_id for r in tool_results] == ["t1", "t2"]
    assert all(r.is_error for r in tool_results)
    assert "Unknown tool: nope" in tool_results[0].content


async def test_consecutive_tool_failures_abort(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo", error=RuntimeError("boom"))
    for i in range(4):
        model_client.push(responses.tools((f"t{i}", "echo", {})))

    limits = SafetyLimits(max_consecutive_errors=2)
    result = await _executor(repos, model_client, tool).run(_context(agent, tool), limits)

    assert result.session.status == SessionStatus.aborted
    assert result.session.abort_reason == AbortReason.too_many_errors.value
    assert len(result.actions) == 2


async def test_large_tool_output_is_truncated_for_model(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo", output="x" * (MAX_TOOL_RESULT_CHARS + 500))
    model_client.push(responses.tools(("t1", "echo", {})), responses.text("done"))

    result = await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    block = model_client.calls[1]["messages"][-1].content[0]
    assert block.content.endswith(TRUNCATION_SUFFIX)
    assert len(block.content) == MAX_TOOL_RESULT_CHARS + len(TRUNCATION_SUFFIX)
    # the action log keeps the full output
    assert len(result.actions[0].output) == MAX_TOOL_RESULT_CHARS + 500


async def test_memory_is_prepended_to_trigger(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(responses.text("ok"))

    await _executor(repos, model_client, tool).run(
        _context(agent, tool, memory={"customer": "ACME"}, payload={"task": "report"}), LIMITS
    )

    first = model_client.calls[0]["messages"][0]
    assert first.role == "user"
    assert first.content.startswith("[System: Agent Memory]\n[customer]: ACME\n\n[User Trigger]\n")
    assert '"task": "report"' in first.content


async def test_default_trigger_text_without_payload(repos, model_client, responses, agent, make_tool) -> None:
    tool = make_tool("echo")
    model_client.push(responses.text("ok"))

    await _executor(repos, model_client, tool).run(_context(agent, tool), LIMITS)

    assert model_client.calls[0]["messages"][0].content == "Start your work."


async def test_closed_session_cannot_run(repos, model_client, agent, make_tool) -> None:
    session = AgentSession(agent_id=agent.id, project_id=agent.project_id)
    session.close(SessionStatus.completed)
    with pytest.raises(InvalidStateError):
        await _executor(repos, model_client).run(_context(agent), LIMITS, session)


# ---------------------------------------------------------------------------
# Approval suspension and resume
# ---------------------------------------------------------------------------


@pytest.fixture
def approval_agent() -> AgentProfile:
    return AgentProfile(id="agent-1", project_id="project-1", name="Ada", tools=["echo", "send_email"])


async def test_approval_required_suspends_session(repos, model_client, responses, approval_agent, make_tool) -> None:
    echo = make_tool("echo")
    mail = make_tool("send_email", requires_approval=True)
    model_client.push(responses.tools(("t1", "send_email", {"text": "hi boss"})))

    result = await _executor(repos, model_client, echo, mail).run(_context(approval_agent, echo, mail), LIMITS)

    assert result.suspended
    assert result.session.status == SessionStatus.running
    assert result.actions == []
    assert result.checkpoint.pending.tool_name == "send_email"
    assert result.checkpoint.carry_tokens == 30
    assert mail.calls == []


async def test_resume_approved_runs_pending_and_queued_calls(
    repos, model_client, responses, approval_agent, make_tool, clock
) -> None:
    echo = make_tool("echo")
    mail = make_tool("send_email", requires_approval=True)
    model_client.push(
        responses.tools(("t1", "echo", {"text": "a"}), ("t2", "send_email", {"text": "b"}), ("t3", "echo", {"text": "c"}))
    )
    executor = _executor(repos, model_client, echo, mail, clock=clock)
    first = await executor.run(_context(approval_agent, echo, mail), LIMITS)

    checkpoint = first.checkpoint
    assert [a.tool_name for a in first.actions] == ["echo"]
    assert [c.tool_use_id for c in checkpoint.queued] == ["t3"]
    assert [r.tool_use_id for r in checkpoint.tool_results] == ["t1"]

    # the checkpoint survives a trip through JSON
    restored = SessionCheckpoint.model_validate(checkpoint.model_dump(mode="json"))
    clock.advance(minutes=10)
    model_client.push(responses.text("mail sent"))
    result = await executor.resume(restored, ApprovalResolution.approved)

    assert result.session.status == SessionStatus.completed
    assert result.session.paused_ms == 600_000
    assert [a.tool_name for a in result.actions] == ["send_email", "echo", None]
    assert [a.sequence for a in result.actions] == [1, 2, 3]
    assert len(mail.calls) == 1
    assert result.session.action_count == 4
    last_user = model_client.calls[-1]["messages"][-1]
    assert [b.tool_use_id for b in last_user.content] == ["t1", "t2", "t3"]


async def test_resume_rejected_reports_rejection(repos, model_client, responses, approval_agent, make_tool) -> None:
    echo = make_tool("echo")
    mail = make_tool("send_email", requires_approval=True)
    model_client.push(responses.tools(("t1", "send_email", {"text": "b"})))
    executor = _executor(repos, model_client, echo, mail)
    first = await executor.run(_context(approval_agent, echo, mail), LIMITS)

    model_client.push(responses.text("understood"))
    result = await executor.resume(first.checkpoint, ApprovalResolution.rejected)

    assert result.session.status == SessionStatus.completed
    assert result.actions[0].error_kind == ActionErrorKind.rejected
    assert result.actions[0].tokens_used == 30
    assert mail.calls == []
    block = model_client.calls[-1]["messages"][-1].content[0]
    assert block.is_error and "rejected" in block.content


async def test_suspension_drops_throttle_state(repos, model_client, responses, approval_agent, make_tool) -> None:
    sleeps = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    echo = make_tool("echo")
    mail = make_tool("send_email", requires_approval=True)
    registry = ToolRegistry([echo, mail])
    invoker = ToolInvoker(ApprovalGate(repos.approval_rules, registry), clock=lambda: 100.0, sleep=record_sleep)
    executor = AgenticLoopExecutor(LoopDeps(model_client=model_client, tools=registry, invoker=invoker))
    limits = SafetyLimits(tool_call_min_interval_ms=1000)
    model_client.push(responses.tools(("t1", "echo", {"text": "a"}), ("t2", "send_email", {"text": "b"})))

    first = await executor.run(_context(approval_agent, echo, mail), limits)
    assert first.suspended

    model_client.push(responses.text("done"))
    result = await executor.resume(first.checkpoint, ApprovalResolution.approved)

    assert result.session.status == SessionStatus.completed
    assert len(mail.calls) == 1
    assert sleeps == []
