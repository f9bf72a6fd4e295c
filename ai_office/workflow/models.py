from __future__ import annotations

"""Workflow definition, node configuration and run-state schemas.

Node configuration is a closed tagged union over ``node_type``; adding a node
kind means adding a config model here and a handler in
``ai_office.workflow.handlers``.

Handlers return :class:`Continue` (the node produced a ``NodeOutput``) or
:class:`Suspend` (the run must pause). A suspension carries typed resume
information, so an approval wait (an approval node, or an agent node whose tool call
needs a decision; both resumed by a human) and a delay (resumed by a timer)
are distinguishable without parsing strings.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import Field, PositiveFloat, model_validator
from typing_extensions import Annotated

from ai_office.agent_core.errors import FailureKind
from ai_office.agent_core.schemas.base import BaseSchema, FrozenSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeType(str, Enum):
    trigger = "trigger"
    agent = "agent"
    condition = "condition"
    approval = "approval"
    delay = "delay"
    output = "output"


class NodeStatus(str, Enum):
    completed = "completed"
    failed = "failed"
    skipped = "skipped"


class RunStatus(str, Enum):
    running = "running"
    completed = "completed"
    failed = "failed"
    paused = "paused"


class PauseReason(str, Enum):
    approval = "approval"
    delay = "delay"


class TriggerType(str, Enum):
    manual = "manual"
    scheduled = "scheduled"
    event = "event"
    webhook = "webhook"


class ConditionType(str, Enum):
    llm_eval = "llm_eval"
    contains = "contains"
    json_path = "json_path"


class DelayUnit(str, Enum):
    minutes = "minutes"
    hours = "hours"
    days = "days"


UNIT_TO_MS: Dict[DelayUnit, int] = {
    DelayUnit.minutes: 60_000,
    DelayUnit.hours: 3_600_000,
    DelayUnit.days: 86_400_000,
}


class OutputType(str, Enum):
    log = "log"
    webhook = "webhook"
    email = "email"


class ApprovalAutoAction(str, Enum):
    approve = "approve"
    reject = "reject"


# ---------------------------------------------------------------------------
# Node configuration (tagged union on ``node_type``)
# ---------------------------------------------------------------------------


class TriggerNodeConfig(FrozenSchema):
    node_type: Literal["trigger"] = "trigger"
    label: Optional[str] = None
    trigger_type: TriggerType = TriggerType.manual
    cron_expression: Optional[str] = None
    event_name: Optional[str] = None


class AgentNodeConfig(FrozenSchema):
    node_type: Literal["agent"] = "agent"
    label: Optional[str] = None
    agent_id: str
    agent_name: Optional[str] = None
    prompt_template: Optional[str] = None


class ConditionNodeConfig(FrozenSchema):
    node_type: Literal["condition"] = "condition"
    label: Optional[str] = None
    condition_type: ConditionType = ConditionType.contains
    condition: str = ""
    json_path: Optional[str] = None
    expected_value: Optional[str] = None


class ApprovalNodeConfig(FrozenSchema):
    node_type: Literal["approval"] = "approval"
    label: Optional[str] = None
    approver_role: str = "owner"
    timeout_minutes: Optional[int] = Field(default=None, gt=0)
    auto_action: Optional[ApprovalAutoAction] = None


class DelayNodeConfig(FrozenSchema):
    node_type: Literal["delay"] = "delay"
    label: Optional[str] = None
    duration: PositiveFloat
    unit: DelayUnit = DelayUnit.minutes

    @property
    def delay_ms(self) -> int:
        return int(self.duration * UNIT_TO_MS[self.unit])


class OutputNodeConfig(FrozenSchema):
    node_type: Literal["output"] = "output"
    label: Optional[str] = None
    output_type: OutputType = OutputType.log
    destination: Optional[str] = None
    template_content: Optional[str] = None


WorkflowNodeConfig = Annotated[
    Union[
        TriggerNodeConfig,
        AgentNodeConfig,
        ConditionNodeConfig,
        ApprovalNodeConfig,
        DelayNodeConfig,
        OutputNodeConfig,
    ],
    Field(discriminator="node_type"),
]


# ---------------------------------------------------------------------------
# Workflow definition
# ---------------------------------------------------------------------------


class WorkflowNode(FrozenSchema):
    id: str
    type: NodeType
    position: Dict[str, float] = Field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    data: WorkflowNodeConfig

    @model_validator(mode="before")
    @classmethod
    def _default_config_tag(cls, value: Any) -> Any:
        # Editors store the kind on the node; copy it into the config when missing.
        if isinstance(value, dict) and isinstance(value.get("data"), dict) and "node_type" not in value["data"]:
            node_type = value.get("type")
            value = {**value, "data": {**value["data"], "node_type": getattr(node_type, "value", node_type)}}
        return value

    @model_validator(mode="after")
    def _check_tag(self) -> "WorkflowNode":
        if self.data.node_type != self.type.value:
            raise ValueError(f"node {self.id}: type '{self.type.value}' does not match config '{self.data.node_type}'")
        return self


class WorkflowEdge(FrozenSchema):
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class WorkflowVariable(FrozenSchema):
    name: str
    default_value: Optional[str] = None


class WorkflowDefinition(FrozenSchema):
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    variables: List[WorkflowVariable] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def node(self, node_id: str) -> Optional[WorkflowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def resolve_variables(self, supplied: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Declared defaults overlaid with the values supplied for a run."""
        values = {v.name: v.default_value for v in self.variables if v.default_value is not None}
        values.update(supplied or {})
        return values


class Workflow(BaseSchema):
    id: str
    project_id: str
    name: str
    definition: WorkflowDefinition = Field(default_factory=WorkflowDefinition)
    is_active: bool = True


# ---------------------------------------------------------------------------
# Execution values
# ---------------------------------------------------------------------------


class WorkflowRunContext(FrozenSchema):
    workflow_id: str
    workflow_run_id: str
    project_id: str
    variables: Dict[str, str] = Field(default_factory=dict)


class NodeOutput(FrozenSchema):
    node_id: str
    node_type: str
    status: NodeStatus
    data: Any = None
    response: Optional[str] = None
    completed_at: datetime = Field(default_factory=_utc_now)


class ApprovalOutcome(FrozenSchema):
    """A human decision on an approval node, or on a tool call of an agent node.

    ``request_id`` names the decided tool approval request in the second case.
    """

    approved: bool
    request_id: Optional[str] = None
    decided_by: Optional[str] = None
    note: Optional[str] = None
    decided_at: datetime = Field(default_factory=_utc_now)


class NodeInput(FrozenSchema):
    node_id: str
    upstream_outputs: Dict[str, NodeOutput] = Field(default_factory=dict)
    variables: Dict[str, str] = Field(default_factory=dict)
    resumed: bool = Field(default=False, description="True when the run resumes at this node.")
    approval: Optional[ApprovalOutcome] = None


class ApprovalResumeInfo(FrozenSchema):
    kind: Literal["approval"] = "approval"
    approver_role: str
    timeout_minutes: Optional[int] = None
    auto_action: Optional[ApprovalAutoAction] = None
    expires_at: Optional[datetime] = None


class ToolApprovalResumeInfo(FrozenSchema):
    """An agent node waits for a decision on one of its session's tool calls."""

    kind: Literal["tool_approval"] = "tool_approval"
    approval_request_id: str
    agent_id: str
    tool_name: str


class DelayResumeInfo(FrozenSchema):
    kind: Literal["delay"] = "delay"
    delay_ms: int
    resume_at: datetime


ResumeInfo = Annotated[
    Union[ApprovalResumeInfo, ToolApprovalResumeInfo, DelayResumeInfo],
    Field(discriminator="kind"),
]


class Continue(FrozenSchema):
    """The node finished; the run moves on."""

    kind: Literal["continue"] = "continue"
    output: NodeOutput


class Suspend(FrozenSchema):
    """The node cannot finish now; the run pauses at ``node_id``."""

    kind: Literal["suspend"] = "suspend"
    node_id: str
    resume_info: ResumeInfo

    @property
    def reason(self) -> PauseReason:
        if isinstance(self.resume_info, DelayResumeInfo):
            return PauseReason.delay
        return PauseReason.approval

    @classmethod
    def for_approval(
        cls,
        node_id: str,
        approver_role: str,
        timeout_minutes: Optional[int] = None,
        auto_action: Optional[ApprovalAutoAction] = None,
        now: Optional[datetime] = None,
    ) -> "Suspend":
        expires_at = None
        if timeout_minutes:
            expires_at = (now or _utc_now()) + timedelta(minutes=timeout_minutes)
        return cls(
            node_id=node_id,
            resume_info=ApprovalResumeInfo(
                approver_role=approver_role,
                timeout_minutes=timeout_minutes,
                auto_action=auto_action,
                expires_at=expires_at,
            ),
        )

    @classmethod
    def for_tool_approval(cls, node_id: str, approval_request_id: str, agent_id: str, tool_name: str) -> "Suspend":
        return cls(
            node_id=node_id,
            resume_info=ToolApprovalResumeInfo(
                approval_request_id=approval_request_id,
                agent_id=agent_id,
                tool_name=tool_name,
            ),
        )

    @classmethod
    def for_delay(cls, node_id: str, delay_ms: int, now: Optional[datetime] = None) -> "Suspend":
        resume_at = (now or _utc_now()) + timedelta(milliseconds=delay_ms)
        return cls(node_id=node_id, resume_info=DelayResumeInfo(delay_ms=delay_ms, resume_at=resume_at))


HandlerResult = Union[Continue, Suspend]


class WorkflowExecutionResult(BaseSchema):
    status: RunStatus
    outputs: Dict[str, NodeOutput] = Field(default_factory=dict)
    paused_at_node_id: Optional[str] = None
    suspension: Optional[Suspend] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None


class WorkflowRun(BaseSchema):
    """Persisted state of one workflow run; enough to resume it in any process."""

    id: str
    workflow_id: str
    project_id: str
    status: RunStatus = RunStatus.running
    variables: Dict[str, str] = Field(default_factory=dict)
    outputs: Dict[str, NodeOutput] = Field(default_factory=dict)
    paused_at_node_id: Optional[str] = None
    suspension: Optional[Suspend] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None

    @property
    def pause_reason(self) -> Optional[PauseReason]:
        return self.suspension.reason if self.suspension else None
