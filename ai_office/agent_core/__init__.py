"""Agent execution engine: the safety-governed tool-calling loop.

Design overview
---------------

An agent session alternates model calls and tool calls until the model stops
asking for tools. Every step is bounded by policy that lives outside the
prompt:

- ``policy.SafetyGovernor`` stops a session on duration, action, token or
  consecutive-error limits.
- ``policy.ApprovalGate`` decides whether a tool call is allowed, blocked or
  must wait for a human.
- ``capabilities.ToolInvoker`` validates, gates, throttles and executes tool
  calls, turning every outcome into an immutable ``ActionRecord``.
- ``runtime.AgenticLoopExecutor`` drives the session as a LangGraph state
  machine and suspends it into a ``SessionCheckpoint`` when a human decision is
  needed.

Typical usage
-------------

Applications use ``agent_core.service.AgentExecutionService``, which claims the
agent, runs or resumes the session, records its actions and releases the
agent. Workflows run agents through the ``agent`` node handler.
"""

from .errors import AIOfficeError, FailureKind
from .schemas.domain import (
    ActionRecord,
    AgentSession,
    ApprovalDecision,
    SafetyLimits,
    SessionStatus,
)

__all__ = [
    "AIOfficeError",
    "ActionRecord",
    "AgentSession",
    "ApprovalDecision",
    "FailureKind",
    "SafetyLimits",
    "SessionStatus",
]
