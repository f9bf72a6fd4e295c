from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from ..errors import FailureKind, InvalidStateError
from .base import BaseSchema, FrozenSchema
from .messages import ChatMessage, ToolResultBlock


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    running = "running"
    completed = "completed"
    error = "error"
    aborted = "aborted"


class ActionType(str, Enum):
    model_call = "model_call"
    tool_call = "tool_call"


class ActionErrorKind(str, Enum):
    validation = "validation"
    permission = "permission"
    execution = "execution"
    timeout = "timeout"
    rejected = "rejected"
    unknown_tool = "unknown_tool"


class ApprovalDecision(str, Enum):
    always_allow = "always_allow"
    always_block = "always_block"
    require_approval = "require_approval"


class ApprovalResolution(str, Enum):
    approved = "approved"
    rejected = "rejected"


class AbortReason(str, Enum):
    duration_exceeded = "duration_exceeded"
    max_actions_exceeded = "max_actions_exceeded"
    max_tokens_exceeded = "max_tokens_exceeded"
    too_many_errors = "too_many_errors"
    response_truncated = "response_truncated"


class AgentStatus(str, Enum):
    idle = "idle"
    working = "working"
    error = "error"


class SafetyLimits(FrozenSchema):
    """Hard bounds applied to one agent session."""

    max_actions_per_session: int = Field(default=20, ge=1, description="Maximum ActionRecords per session.")
    max_tokens_per_session: int = Field(default=100_000, ge=1, description="Maximum model tokens per session.")
    max_duration_ms: int = Field(default=5 * 60 * 1000, ge=1, description="Maximum active wall-clock time.")
    max_consecutive_errors: int = Field(default=3, ge=1, description="Failed actions in a row before aborting.")
    tool_call_min_interval_ms: int = Field(
        default=2000, ge=0, description="Minimum gap between two external tool calls of one session."
    )


class ActionRecord(FrozenSchema):
    """One immutable entry of a session's action log."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    sequence: int
    type: ActionType
    tool_name: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    output: Optional[Any] = None
    tokens_used: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    error: Optional[str] = None
    error_kind: Optional[ActionErrorKind] = None
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def failed(self) -> bool:
        return self.error is not None


class AgentSession(BaseSchema):
    """
    One execution attempt of one agent.

    Counters only move through :meth:`record`; the status only moves through
    :meth:`close`. Once the status leaves ``running`` every field is read-only.
    """

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    project_id: str
    started_at: datetime = Field(default_factory=_utc_now)
    action_count: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    consecutive_errors: int = 0
    paused_ms: int = 0
    status: SessionStatus = SessionStatus.running
    abort_reason: Optional[str] = None
    error: Optional[str] = None
    ended_at: Optional[datetime] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("status", SessionStatus.running) != SessionStatus.running:
            raise InvalidStateError(f"Session {self.session_id} is {self.status.value} and can no longer change")
        super().__setattr__(name, value)

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.running

    def elapsed_ms(self, now: Optional[datetime] = None) -> int:
        """Active wall-clock time, excluding time spent suspended for approval."""
        end = now or self.ended_at or _utc_now()
        return int((end - self.started_at).total_seconds() * 1000) - self.paused_ms

    def record(self, action: ActionRecord) -> None:
        self.action_count = self.action_count + 1
        self.total_tokens = self.total_tokens + action.tokens_used
        self.total_cost_usd = self.total_cost_usd + action.cost_usd
        self.consecutive_errors = self.consecutive_errors + 1 if action.failed else 0

    def close(
        self,
        status: SessionStatus,
        *,
        abort_reason: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if status == SessionStatus.running:
            raise InvalidStateError("A session can only be closed into a terminal status")
        self.abort_reason = abort_reason
        self.error = error
        self.ended_at = _utc_now()
        self.status = status


class ModelParams(FrozenSchema):
    model: str = "claude-sonnet-4-6"
    temperature: float = 0.7
    max_tokens: int = 4096
    provider: Optional[str] = None


class AgentProfile(BaseSchema):
    """An agent's configuration as returned by the agent registry."""

    id: str
    project_id: str
    name: str
    archetype: str = "generalist"
    model: ModelParams = Field(default_factory=ModelParams)
    budget: Optional[float] = Field(default=1.0, description="Token budget in units of 100k tokens.")
    tools: Optional[List[str]] = Field(default=None, description="Tool allowlist; None grants every registered tool.")
    system_prompt: Optional[str] = None
    max_actions_per_session: Optional[int] = None
    is_active: bool = True
    status: AgentStatus = AgentStatus.idle

    def resolved_system_prompt(self) -> str:
        if self.system_prompt:
            return self.system_prompt
        return (
            f"You are {self.name}, a {self.archetype} agent. "
            "Complete the assigned task using the available tools."
        )

    def safety_limits(self, defaults: SafetyLimits) -> SafetyLimits:
        """Per-agent limits derived from the agent's budget and action cap."""
        overrides: Dict[str, Any] = {}
        if self.max_actions_per_session:
            overrides["max_actions_per_session"] = self.max_actions_per_session
        if self.budget:
            overrides["max_tokens_per_session"] = max(1, int(self.budget * 100_000))
        return defaults.model_copy(update=overrides)


class AgentContext(BaseSchema):
    """Everything the loop needs to build the model context of a session."""

    agent: AgentProfile
    system_prompt: str
    tool_names: List[str] = Field(default_factory=list)
    memory: Dict[str, Any] = Field(default_factory=dict)
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    trigger_payload: Optional[Dict[str, Any]] = None


class PendingToolCall(FrozenSchema):
    tool_use_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class SessionCheckpoint(BaseSchema):
    """
    Serializable state of a session suspended for tool approval.

    Holds everything needed to continue the loop in another process: the
    session counters, the message history, the tool results already produced
    for the current model turn and the tool calls still queued behind the
    pending one.
    """

    session: AgentSession
    limits: SafetyLimits
    agent: AgentProfile
    system_prompt: str
    tool_names: List[str]
    messages: List[ChatMessage]
    pending: PendingToolCall
    queued: List[PendingToolCall] = Field(default_factory=list)
    tool_results: List[ToolResultBlock] = Field(default_factory=list)
    carry_tokens: int = 0
    carry_cost_usd: float = 0.0
    next_sequence: int = 0
    suspended_at: datetime = Field(default_factory=_utc_now)


class AgentExecutionResult(BaseSchema):
    session: AgentSession
    actions: List[ActionRecord] = Field(default_factory=list)
    final_response: Optional[str] = None
    checkpoint: Optional[SessionCheckpoint] = None
    failure_kind: Optional[FailureKind] = None

    @property
    def suspended(self) -> bool:
        return self.checkpoint is not None

    @property
    def duration_ms(self) -> int:
        return max(0, self.session.elapsed_ms())


class ApprovalRule(BaseSchema):
    """A stored decision gating one agent's use of one tool."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    agent_id: str
    tool_name: str
    action: ApprovalDecision
    created_at: datetime = Field(default_factory=_utc_now)


class ToolApprovalStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ToolApprovalRequest(BaseSchema):
    """A tool call waiting for a human decision, with the suspended session."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    agent_id: str
    session_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    status: ToolApprovalStatus = ToolApprovalStatus.pending
    checkpoint: SessionCheckpoint
    workflow_run_id: Optional[str] = None
    requested_at: datetime = Field(default_factory=_utc_now)
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    note: Optional[str] = None

    @property
    def resolution(self) -> Optional[ApprovalResolution]:
        if self.status == ToolApprovalStatus.approved:
            return ApprovalResolution.approved
        if self.status == ToolApprovalStatus.rejected:
            return ApprovalResolution.rejected
        return None

    @classmethod
    def from_checkpoint(
        cls, checkpoint: SessionCheckpoint, *, workflow_run_id: Optional[str] = None
    ) -> "ToolApprovalRequest":
        session = checkpoint.session
        return cls(
            project_id=session.project_id,
            agent_id=session.agent_id,
            session_id=session.session_id,
            tool_name=checkpoint.pending.tool_name,
            input=dict(checkpoint.pending.input),
            checkpoint=checkpoint,
            workflow_run_id=workflow_run_id,
        )
