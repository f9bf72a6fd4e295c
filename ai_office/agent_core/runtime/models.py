from __future__ import annotations

"""Runtime dependency bundle and LangGraph state types.

- ``LoopDeps`` collects the collaborators the loop needs.
- ``_LoopState`` is the mutable state passed between LangGraph nodes.

Everything in the state that must survive a suspension is copied into a
``SessionCheckpoint``; the remaining keys are one-shot flags of a single
``ainvoke``.
"""

from dataclasses import dataclass, field
from typing import Any, List, NotRequired, Optional, Required, TypedDict

from ..capabilities.invoker import ToolInvoker
from ..capabilities.registry import ToolRegistry
from ..model_provider.base import ModelClient
from ..policy.safety_governor import SafetyGovernor
from ..schemas.domain import (
    ActionRecord,
    AgentProfile,
    AgentSession,
    PendingToolCall,
    SafetyLimits,
    SessionCheckpoint,
)
from ..schemas.messages import ChatMessage, ToolResultBlock


@dataclass(frozen=True)
class LoopDeps:
    """Dependency bundle for ``AgenticLoopExecutor``.

    ``tool_deps`` is handed to every tool through ``ToolExecutionContext.deps``
    (HTTP client, e-mail sender, memory repository).
    """

    model_client: ModelClient
    tools: ToolRegistry
    invoker: ToolInvoker
    governor: SafetyGovernor = field(default_factory=SafetyGovernor)
    tool_deps: Any = None


class _LoopState(TypedDict):
    """Mutable LangGraph state for one session.

    Required keys:

    - ``session`` / ``limits`` / ``agent`` / ``system_prompt`` / ``tool_names``:
      the session and its fixed configuration.
    - ``messages``: conversation sent to the model.
    - ``actions``: records produced by this invocation.
    - ``pending``: tool calls of the current model turn not yet run.
    - ``tool_results``: results already produced for the current model turn.
    - ``carry_tokens`` / ``carry_cost_usd``: model usage not yet attributed to a
      record (attached to the next tool-call record).
    - ``next_sequence``: sequence number of the next record.

    Optional keys:

    - ``final_response``: last assistant text.
    - ``checkpoint``: set when the session suspends for tool approval.
    - ``_approved_call_id`` / ``_rejected_call_id``: one-shot resume flags.
    - ``_done``: terminates the graph.
    """

    session: Required[AgentSession]
    limits: Required[SafetyLimits]
    agent: Required[AgentProfile]
    system_prompt: Required[str]
    tool_names: Required[List[str]]
    messages: Required[List[ChatMessage]]
    actions: Required[List[ActionRecord]]
    pending: Required[List[PendingToolCall]]
    tool_results: Required[List[ToolResultBlock]]
    carry_tokens: Required[int]
    carry_cost_usd: Required[float]
    next_sequence: Required[int]
    final_response: NotRequired[Optional[str]]
    checkpoint: NotRequired[Optional[SessionCheckpoint]]
    _approved_call_id: NotRequired[Optional[str]]
    _rejected_call_id: NotRequired[Optional[str]]
    _done: NotRequired[bool]
