from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Type, Union

import pytest
from pydantic import BaseModel

from ai_office.agent_core.errors import ProviderError
from ai_office.agent_core.model_provider.base import ModelResponse, ModelToolSpec
from ai_office.agent_core.schemas.domain import (
    ActionRecord,
    AgentProfile,
    AgentStatus,
    ApprovalDecision,
    ApprovalRule,
    ModelParams,
    ToolApprovalRequest,
    ToolApprovalStatus,
)
from ai_office.agent_core.schemas.messages import ChatMessage, TextBlock, ToolUseBlock
from ai_office.worker.jobs import JobStatus, QueuedJob
from ai_office.workflow.models import NodeOutput, Workflow, WorkflowRun

# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------


class _AgentsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, AgentProfile] = {}
        self.memory: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.releases: List[Tuple[str, AgentStatus]] = []

    async def get(self, agent_id: str) -> Optional[AgentProfile]:
        agent = self.by_id.get(agent_id)
        return agent.model_copy() if agent else None

    async def save(self, agent: AgentProfile) -> None:
        self.by_id[agent.id] = agent

    async def get_memory(self, agent_id: str, project_id: str) -> Dict[str, Any]:
        return dict(self.memory.get((agent_id, project_id), {}))

    async def set_memory(self, agent_id: str, project_id: str, key: str, value: Any) -> None:
        self.memory.setdefault((agent_id, project_id), {})[key] = value

    async def claim(self, agent_id: str) -> bool:
        agent = self.by_id.get(agent_id)
        if agent is None or not agent.is_active or agent.status != AgentStatus.idle:
            return False
        agent.status = AgentStatus.working
        return True

    async def release(self, agent_id: str, status: AgentStatus) -> None:
        self.releases.append((agent_id, status))
        agent = self.by_id.get(agent_id)
        if agent is not None:
            agent.status = status


class _ApprovalRulesRepo:
    def __init__(self) -> None:
        self.rules: Dict[Tuple[str, str, str], ApprovalDecision] = {}

    async def lookup(self, project_id: str, agent_id: str, tool_name: str) -> Optional[ApprovalDecision]:
        return self.rules.get((project_id, agent_id, tool_name))

    async def upsert(self, rule: ApprovalRule) -> None:
        self.rules[(rule.project_id, rule.agent_id, rule.tool_name)] = rule.action


class _ActionLogRepo:
    def __init__(self) -> None:
        self.entries: List[Tuple[ActionRecord, str, str]] = []

    async def append(self, record: ActionRecord, *, agent_id: str, project_id: str) -> None:
        self.entries.append((record, agent_id, project_id))

    async def list_for_session(self, session_id: str) -> List[ActionRecord]:
        return [r for r, _, _ in self.entries if r.session_id == session_id]


class _ToolApprovalsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, ToolApprovalRequest] = {}

    async def create(self, request: ToolApprovalRequest) -> None:
        self.by_id[request.id] = request

    async def get(self, request_id: str) -> Optional[ToolApprovalRequest]:
        return self.by_id.get(request_id)

    async def list_pending(self, project_id: str) -> List[ToolApprovalRequest]:
        return [
            r for r in self.by_id.values() if r.project_id == project_id and r.status == ToolApprovalStatus.pending
        ]

    async def resolve(
        self,
        request_id: str,
        *,
        status: ToolApprovalStatus,
        decided_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[ToolApprovalRequest]:
        request = self.by_id.get(request_id)
        if request is None or request.status != ToolApprovalStatus.pending:
            return None
        request.status = status
        request.decided_by = decided_by
        request.note = note
        request.decided_at = datetime.now(timezone.utc)
        return request


class _WorkflowsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, Workflow] = {}

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        return self.by_id.get(workflow_id)

    async def save(self, workflow: Workflow) -> None:
        self.by_id[workflow.id] = workflow


class _RunsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, WorkflowRun] = {}
        self.saved_statuses: List[str] = []

    async def create(self, run: WorkflowRun) -> None:
        self.by_id[run.id] = run.model_copy(deep=True)

    async def get(self, run_id: str) -> Optional[WorkflowRun]:
        run = self.by_id.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def save(self, run: WorkflowRun) -> None:
        self.saved_statuses.append(run.status.value)
        self.by_id[run.id] = run.model_copy(deep=True)


class _NodeRunsRepo:
    def __init__(self) -> None:
        self.appended: List[Tuple[str, str, NodeOutput]] = []

    async def append(self, workflow_run_id: str, project_id: str, output: NodeOutput) -> None:
        self.appended.append((workflow_run_id, project_id, output))

    async def list_for_run(self, workflow_run_id: str) -> List[NodeOutput]:
        return [o for run_id, _, o in self.appended if run_id == workflow_run_id]


class _JobQueue:
    def __init__(self) -> None:
        self.jobs: Dict[str, QueuedJob] = {}

    async def enqueue(self, job: QueuedJob) -> str:
        self.jobs[job.id] = job
        return job.id

    async def claim_due(self, now: datetime, limit: int) -> List[QueuedJob]:
        due = [j for j in self.jobs.values() if j.status == JobStatus.pending and j.run_at <= now]
        due.sort(key=lambda j: j.run_at)
        claimed = []
        for job in due[:limit]:
            job.status = JobStatus.running
            claimed.append(job.model_copy())
        return claimed

    async def complete(self, job_id: str) -> None:
        self.jobs[job_id].status = JobStatus.done

    async def retry(self, job_id: str, *, run_at: datetime, error: str) -> None:
        job = self.jobs[job_id]
        job.status = JobStatus.pending
        job.attempts += 1
        job.run_at = run_at
        job.last_error = error

    async def defer(self, job_id: str, *, run_at: datetime, reason: str) -> None:
        job = self.jobs[job_id]
        job.status = JobStatus.pending
        job.run_at = run_at
        job.last_error = reason

    async def bury(self, job_id: str, *, error: str) -> None:
        job = self.jobs[job_id]
        job.status = JobStatus.dead
        job.attempts += 1
        job.last_error = error

    def pending(self) -> List[QueuedJob]:
        return [j for j in self.jobs.values() if j.status == JobStatus.pending]


@pytest.fixture
def repos() -> SimpleNamespace:
    return SimpleNamespace(
        agents=_AgentsRepo(),
        approval_rules=_ApprovalRulesRepo(),
        action_logs=_ActionLogRepo(),
        tool_approvals=_ToolApprovalsRepo(),
        workflows=_WorkflowsRepo(),
        runs=_RunsRepo(),
        node_runs=_NodeRunsRepo(),
        jobs=_JobQueue(),
    )


# ---------------------------------------------------------------------------
# Model client and tools
# ---------------------------------------------------------------------------


class _ScriptedModelClient:
    """Returns queued responses in order; an exception in the script is raised."""

    def __init__(self, script: Sequence[Union[ModelResponse, Exception]] = ()) -> None:
        self.script: List[Union[ModelResponse, Exception]] = list(script)
        self.calls: List[Dict[str, Any]] = []

    def push(self, *items: Union[ModelResponse, Exception]) -> None:
        self.script.extend(items)

    async def call(
        self,
        params: ModelParams,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ModelToolSpec]] = None,
    ) -> ModelResponse:
        self.calls.append(
            {"params": params, "system_prompt": system_prompt, "messages": list(messages), "tools": tools}
        )
        if not self.script:
            raise ProviderError("scripted", "no scripted response left")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def text_response(text: str, *, input_tokens: int = 10, output_tokens: int = 5, stop_reason: str = "end_turn"):
    return ModelResponse(
        model="claude-sonnet-4-6",
        content=[TextBlock(text=text)],
        stop_reason=stop_reason,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def tool_response(*calls: Tuple[str, str, Dict[str, Any]], input_tokens: int = 20, output_tokens: int = 10):
    return ModelResponse(
        model="claude-sonnet-4-6",
        content=[ToolUseBlock(id=call_id, name=name, input=args) for call_id, name, args in calls],
        stop_reason="tool_use",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


class _EchoInput(BaseModel):
    text: str = ""


class _SpyTool:
    """Records every execution; returns ``output`` or raises ``error``."""

    input_model: ClassVar[Type[BaseModel]] = _EchoInput

    def __init__(
        self,
        name: str = "echo",
        *,
        requires_approval: bool = False,
        output: Any = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.description = f"spy tool {name}"
        self.requires_approval = requires_approval
        self.output = output
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, args: _EchoInput, ctx) -> Any:
        self.calls.append({"args": args.model_dump(), "session_id": ctx.session_id})
        if self.error is not None:
            raise self.error
        return self.output if self.output is not None else {"echo": args.text}


class _FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def model_client() -> _ScriptedModelClient:
    return _ScriptedModelClient()


@pytest.fixture
def responses() -> SimpleNamespace:
    return SimpleNamespace(text=text_response, tools=tool_response)


@pytest.fixture
def make_tool():
    return _SpyTool


@pytest.fixture
def clock() -> _FakeClock:
    return _FakeClock()


@pytest.fixture
def agent() -> AgentProfile:
    return AgentProfile(id="agent-1", project_id="project-1", name="Ada", tools=["echo"])
