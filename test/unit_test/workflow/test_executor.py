from __future__ import annotations

from datetime import timedelta
from typing import Any, ClassVar, List

import pytest

from ai_office.agent_core.capabilities.invoker import ToolInvoker
from ai_office.agent_core.capabilities.registry import ToolRegistry
from ai_office.agent_core.errors import CycleDetectedError, FailureKind, NoHandlerError, WorkflowDefinitionError
from ai_office.agent_core.policy.approval_gate import ApprovalGate
from ai_office.agent_core.runtime import AgenticLoopExecutor, LoopDeps
from ai_office.agent_core.schemas.domain import AgentProfile, ToolApprovalStatus
from ai_office.workflow.executor import WorkflowExecutor
from ai_office.workflow.handlers import (
    AgentNodeHandler,
    ApprovalNodeHandler,
    ConditionNodeHandler,
    DelayNodeHandler,
    OutputNodeHandler,
    TriggerNodeHandler,
)
from ai_office.workflow.models import (
    ApprovalOutcome,
    NodeStatus,
    NodeType,
    PauseReason,
    RunStatus,
    ToolApprovalResumeInfo,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
    WorkflowRunContext,
)
from ai_office.workflow.registry import NodeHandlerRegistry

pytestmark = pytest.mark.asyncio


async def _no_sleep(seconds: float) -> None:
    return None


class _CountingTrigger(TriggerNodeHandler):
    runs: ClassVar[List[str]] = []

    async def execute(self, config, input, ctx):
        self.runs.append(input.node_id)
        return await super().execute(config, input, ctx)


class _ExplodingOutput:
    node_type = NodeType.output

    async def execute(self, config, input, ctx):
        raise RuntimeError("printer on fire")


def _node(node_id: str, node_type: str, **data: Any) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, data=data)


def _edge(source: str, target: str, handle=None) -> WorkflowEdge:
    return WorkflowEdge(id=f"{source}->{target}", source=source, target=target, source_handle=handle)


def _ctx(**variables: str) -> WorkflowRunContext:
    return WorkflowRunContext(workflow_id="wf-1", workflow_run_id="run-1", project_id="project-1", variables=variables)


@pytest.fixture(autouse=True)
def _reset_trigger_counter():
    _CountingTrigger.runs = []
    yield


@pytest.fixture
def mailer(make_tool):
    return make_tool("mailer", requires_approval=True)


@pytest.fixture
def registry(repos, model_client, clock, mailer) -> NodeHandlerRegistry:
    tools = ToolRegistry([mailer])
    invoker = ToolInvoker(ApprovalGate(repos.approval_rules, tools), sleep=_no_sleep)
    loop = AgenticLoopExecutor(LoopDeps(model_client=model_client, tools=tools, invoker=invoker))
    return NodeHandlerRegistry(
        [
            _CountingTrigger(),
            AgentNodeHandler(agents=repos.agents, tools=tools, executor=loop, tool_approvals=repos.tool_approvals),
            ConditionNodeHandler(),
            ApprovalNodeHandler(clock=clock),
            DelayNodeHandler(clock=clock),
            OutputNodeHandler(),
        ]
    )


@pytest.fixture
def executor(registry, repos) -> WorkflowExecutor:
    return WorkflowExecutor(registry, node_runs=repos.node_runs)


async def test_trigger_agent_output_completes(executor, repos, model_client, responses, agent) -> None:
    await repos.agents.save(agent)
    model_client.push(responses.text("Weekly summary"))
    definition = WorkflowDefinition(
        nodes=[_node("trigger", "trigger"), _node("agent", "agent", agent_id="agent-1"), _node("out", "output")],
        edges=[_edge("trigger", "agent"), _edge("agent", "out")],
    )

    result = await executor.execute(definition, _ctx())

    assert result.status == RunStatus.completed
    assert list(result.outputs) == ["trigger", "agent", "out"]
    assert all(o.status == NodeStatus.completed for o in result.outputs.values())
    assert result.outputs["agent"].response == "Weekly summary"
    assert [o.node_id for _, _, o in repos.node_runs.appended] == ["trigger", "agent", "out"]
    assert "Weekly summary" in result.outputs["out"].data["content"]


def _branching() -> WorkflowDefinition:
    return WorkflowDefinition(
        nodes=[
            _node("trigger", "trigger"),
            _node("cond", "condition", condition_type="contains", condition="urgent"),
            _node("page", "output", template_content="paging on-call"),
            _node("digest", "output", template_content="added to digest"),
        ],
        edges=[_edge("trigger", "cond"), _edge("cond", "page", "yes"), _edge("cond", "digest", "no")],
    )


async def test_condition_routes_to_yes_branch(executor) -> None:
    result = await executor.execute(_branching(), _ctx(message="urgent: server down"))

    assert result.status == RunStatus.completed
    assert result.outputs["cond"].data is True
    assert result.outputs["page"].status == NodeStatus.completed
    assert result.outputs["digest"].status == NodeStatus.skipped
    assert result.outputs["digest"].data == {"reason": "Condition cond evaluated to yes"}


async def test_condition_routes_to_no_branch(executor) -> None:
    result = await executor.execute(_branching(), _ctx(message="weekly newsletter"))

    assert result.outputs["page"].status == NodeStatus.skipped
    assert result.outputs["digest"].status == NodeStatus.completed


def _delayed() -> WorkflowDefinition:
    return WorkflowDefinition(
        nodes=[_node("trigger", "trigger"), _node("wait", "delay", duration=5, unit="minutes"), _node("out", "output")],
        edges=[_edge("trigger", "wait"), _edge("wait", "out")],
    )


async def test_delay_pauses_and_resumes(executor, clock) -> None:
    paused = await executor.execute(_delayed(), _ctx())

    assert paused.status == RunStatus.paused
    assert paused.paused_at_node_id == "wait"
    assert paused.suspension.reason == PauseReason.delay
    assert paused.suspension.resume_info.resume_at == clock.now + timedelta(milliseconds=300_000)
    assert list(paused.outputs) == ["trigger"]

    clock.advance(minutes=5)
    resumed = await executor.execute(_delayed(), _ctx(), resume_from_node_id="wait", existing_outputs=paused.outputs)

    assert resumed.status == RunStatus.completed
    assert list(resumed.outputs) == ["trigger", "wait", "out"]
    assert _CountingTrigger.runs == ["trigger"]


async def test_resume_does_not_recompute_completed_nodes(executor) -> None:
    definition = WorkflowDefinition(
        nodes=[_node("a", "trigger"), _node("b", "approval", approver_role="manager"), _node("c", "output")],
        edges=[_edge("a", "b"), _edge("b", "c")],
    )
    paused = await executor.execute(definition, _ctx())
    assert paused.suspension.reason == PauseReason.approval

    resumed = await executor.execute(
        definition,
        _ctx(),
        resume_from_node_id="b",
        existing_outputs=paused.outputs,
        approval=ApprovalOutcome(approved=True, decided_by="boss"),
    )

    assert resumed.status == RunStatus.completed
    assert resumed.outputs["a"] == paused.outputs["a"]
    assert resumed.outputs["b"].data["decided_by"] == "boss"
    assert _CountingTrigger.runs == ["a"]


async def test_agent_tool_approval_pauses_and_resumes_session(
    executor, repos, model_client, responses, mailer
) -> None:
    await repos.agents.save(AgentProfile(id="a", project_id="project-1", name="Ada", tools=["mailer"]))
    model_client.push(responses.tools(("t1", "mailer", {"text": "hello team"})))
    definition = WorkflowDefinition(
        nodes=[_node("trigger", "trigger"), _node("ag", "agent", agent_id="a"), _node("out", "output")],
        edges=[_edge("trigger", "ag"), _edge("ag", "out")],
    )

    paused = await executor.execute(definition, _ctx())

    assert paused.status == RunStatus.paused
    assert paused.paused_at_node_id == "ag"
    assert paused.suspension.reason == PauseReason.approval
    info = paused.suspension.resume_info
    assert isinstance(info, ToolApprovalResumeInfo)
    assert info.tool_name == "mailer"
    assert list(paused.outputs) == ["trigger"]
    assert mailer.calls == []

    await repos.tool_approvals.resolve(info.approval_request_id, status=ToolApprovalStatus.approved, decided_by="maria")
    model_client.push(responses.text("Mail delivered"))
    resumed = await executor.execute(
        definition,
        _ctx(),
        resume_from_node_id="ag",
        existing_outputs=paused.outputs,
        approval=ApprovalOutcome(approved=True, request_id=info.approval_request_id, decided_by="maria"),
    )

    assert resumed.status == RunStatus.completed
    assert list(resumed.outputs) == ["trigger", "ag", "out"]
    assert resumed.outputs["ag"].response == "Mail delivered"
    assert len(mailer.calls) == 1
    assert _CountingTrigger.runs == ["trigger"]


async def test_failed_node_fails_run_and_stops(executor) -> None:
    definition = WorkflowDefinition(
        nodes=[_node("trigger", "trigger"), _node("hook", "output", output_type="webhook"), _node("after", "output")],
        edges=[_edge("trigger", "hook"), _edge("hook", "after")],
    )

    result = await executor.execute(definition, _ctx())

    assert result.status == RunStatus.failed
    assert result.failure_kind == FailureKind.configuration
    assert result.error.startswith("Node hook (output) failed: Webhook destination URL is required")
    assert "after" not in result.outputs


async def test_handler_exception_becomes_failed_output(registry, repos) -> None:
    registry.register(_ExplodingOutput())
    definition = WorkflowDefinition(nodes=[_node("trigger", "trigger"), _node("out", "output")], edges=[_edge("trigger", "out")])

    result = await WorkflowExecutor(registry).execute(definition, _ctx())

    assert result.status == RunStatus.failed
    assert result.outputs["out"].status == NodeStatus.failed
    assert result.outputs["out"].data["error"] == "RuntimeError: printer on fire"
    assert result.failure_kind == FailureKind.tool


async def test_cycle_is_rejected_before_any_node_runs(executor) -> None:
    definition = WorkflowDefinition(
        nodes=[_node("a", "trigger"), _node("b", "output"), _node("c", "output")],
        edges=[_edge("a", "b"), _edge("b", "c"), _edge("c", "b")],
    )
    with pytest.raises(CycleDetectedError):
        await executor.execute(definition, _ctx())
    assert _CountingTrigger.runs == []


async def test_missing_handler_is_rejected(repos) -> None:
    definition = WorkflowDefinition(nodes=[_node("a", "trigger"), _node("d", "delay", duration=1)], edges=[_edge("a", "d")])
    with pytest.raises(NoHandlerError):
        await WorkflowExecutor(NodeHandlerRegistry([_CountingTrigger()])).execute(definition, _ctx())
    assert _CountingTrigger.runs == []


async def test_unknown_resume_node_is_rejected(executor) -> None:
    with pytest.raises(WorkflowDefinitionError):
        await executor.execute(_delayed(), _ctx(), resume_from_node_id="ghost")


async def test_node_run_sink_failures_do_not_change_run(registry, repos) -> None:
    async def broken_append(run_id, project_id, output):
        raise RuntimeError("db down")

    repos.node_runs.append = broken_append

    result = await WorkflowExecutor(registry, node_runs=repos.node_runs).execute(_branching(), _ctx(message="urgent"))

    assert result.status == RunStatus.completed


async def test_variables_resolve_in_node_config(registry) -> None:
    definition = WorkflowDefinition(
        nodes=[_node("trigger", "trigger"), _node("out", "output", template_content="Hi {{who}}")],
        edges=[_edge("trigger", "out")],
    )
    result = await WorkflowExecutor(registry).execute(definition, _ctx(who="team"))
    assert result.outputs["out"].data["content"] == "Hi team"
