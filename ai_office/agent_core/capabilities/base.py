from __future__ import annotations

"""Tool protocol and execution data models.

A tool is the concrete execution unit an agent may call. The loop resolves a
requested tool name through a ``ToolRegistry`` and runs it through the
``ToolInvoker``, which validates the input against ``input_model`` and applies
the approval gate before ``execute`` is ever reached.

Tools should:

- declare their input as a pydantic model (the JSON schema sent to the model is
  derived from it),
- return JSON-serializable output (a pydantic model, dict, list or scalar),
- avoid performing approval or safety decisions themselves.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Protocol, Type

from pydantic import BaseModel

from ..model_provider.base import ModelToolSpec


@dataclass(frozen=True)
class ToolExecutionContext:
    """Execution context passed to tool implementations.

    Attributes
    ----------
    session_id / agent_id / project_id:
        Identify the session that requested the call.
    tool_call_min_interval_ms:
        Minimum gap between two external calls of this session.
    deps:
        Runtime dependencies shared by tools (``ToolDeps``): HTTP client,
        e-mail sender, memory repository.
    """

    session_id: str
    agent_id: str
    project_id: str
    tool_call_min_interval_ms: int = 0
    deps: Any = None


class ToolDefinition(Protocol):
    """Protocol for tool implementations."""

    name: ClassVar[str]
    description: ClassVar[str]
    input_model: ClassVar[Type[BaseModel]]
    requires_approval: ClassVar[bool]

    async def execute(self, args: BaseModel, ctx: ToolExecutionContext) -> Any: ...


def tool_spec(tool: ToolDefinition) -> ModelToolSpec:
    """Describe a tool for the model."""
    return ModelToolSpec(
        name=tool.name,
        description=tool.description,
        input_schema=tool.input_model.model_json_schema(),
    )
