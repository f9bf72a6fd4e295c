"""Error types for the agent engine and the workflow orchestrator.

Every error carries a :class:`FailureKind` so that callers can tell an operator
*why* something stopped without parsing messages:

- ``safety_limit``: a session hit one of its safety limits (raise limits).
- ``provider`` / ``tool``: an external model or tool call failed (fix the
  integration).
- ``configuration``: an agent or workflow definition is invalid (fix the
  definition).
- ``rejected``: a human reviewer declined an approval.

``ApprovalRequired`` is not a failure. It describes a suspension and is used as
a typed value (see ``ToolInvoker``) rather than raised through the loop.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    safety_limit = "safety_limit"
    provider = "provider"
    tool = "tool"
    configuration = "configuration"
    rejected = "rejected"


_KIND_LABELS: Dict[FailureKind, str] = {
    FailureKind.safety_limit: "hit a safety limit",
    FailureKind.provider: "a provider call failed",
    FailureKind.tool: "a tool failed",
    FailureKind.configuration: "configuration is invalid",
    FailureKind.rejected: "rejected by a reviewer",
}


def describe_failure(kind: FailureKind, detail: str) -> str:
    """Render the human-readable reason shown to operators."""
    return f"{detail} ({_KIND_LABELS[kind]})"


class AIOfficeError(Exception):
    """Base error for all AI Office exceptions."""

    kind: FailureKind = FailureKind.configuration

    @property
    def reason(self) -> str:
        return describe_failure(self.kind, str(self))


class ToolValidationError(AIOfficeError):
    """Raised when tool input does not match the tool's input schema."""

    kind = FailureKind.tool

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Invalid input for tool '{tool_name}': {message}")


class ToolPermissionError(AIOfficeError):
    """Raised when an approval rule blocks a tool for an agent."""

    kind = FailureKind.tool

    def __init__(self, agent_id: str, tool_name: str) -> None:
        self.agent_id = agent_id
        self.tool_name = tool_name
        super().__init__(f"Agent '{agent_id}' is not permitted to call tool '{tool_name}'")


class ApprovalRequired(AIOfficeError):
    """Describes a tool call that must wait for a human decision."""

    def __init__(self, tool_name: str, tool_input: Optional[Dict[str, Any]] = None) -> None:
        self.tool_name = tool_name
        self.tool_input = dict(tool_input or {})
        super().__init__(f"Tool '{tool_name}' requires human approval")


class SafetyLimitExceeded(AIOfficeError):
    """Raised when a session must stop because of a safety limit."""

    kind = FailureKind.safety_limit

    def __init__(self, reason: str) -> None:
        self.limit = reason
        super().__init__(f"Safety limit exceeded: {reason}")


class ProviderError(AIOfficeError):
    """Raised when an external provider call fails.

    Retryable by the job queue, never inside the agent loop.
    """

    kind = FailureKind.provider

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' call failed: {message}")


class WorkflowDefinitionError(AIOfficeError):
    """Raised when a workflow definition cannot be executed."""

    kind = FailureKind.configuration


class CycleDetectedError(WorkflowDefinitionError):
    """Raised when a workflow graph contains a cycle."""

    def __init__(self, unresolved: Optional[list[str]] = None) -> None:
        self.unresolved = sorted(unresolved or [])
        detail = f" involving nodes {', '.join(self.unresolved)}" if self.unresolved else ""
        super().__init__(f"Workflow graph contains a cycle{detail}")


class NoHandlerError(WorkflowDefinitionError):
    """Raised when no handler is registered for a node type."""

    def __init__(self, node_type: str) -> None:
        self.node_type = node_type
        super().__init__(f"No handler registered for node type: '{node_type}'")


class NotFoundError(AIOfficeError):
    """Base error for missing entities."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class AgentNotFoundError(NotFoundError):
    def __init__(self, agent_id: str) -> None:
        super().__init__("Agent", agent_id)


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__("Workflow", workflow_id)


class WorkflowRunNotFoundError(NotFoundError):
    def __init__(self, run_id: str) -> None:
        super().__init__("Workflow run", run_id)


class InvalidStateError(AIOfficeError):
    """Raised when an operation does not apply to an entity's current state."""


class AgentBusyError(AIOfficeError):
    """Raised when a job that must not be dropped finds its agent not idle.

    The job queue reschedules the job instead of completing it.
    """

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' is not idle")
