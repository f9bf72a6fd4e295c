"""Tool capabilities: definitions, the registry, the invoker and builtin tools."""

from .base import ToolDefinition, ToolExecutionContext, tool_spec
from .registry import ToolRegistry
from .invoker import InvocationOutcome, ToolInvoker
from .builtin import ToolDeps, build_default_tool_registry

__all__ = [
    "InvocationOutcome",
    "ToolDefinition",
    "ToolDeps",
    "ToolExecutionContext",
    "ToolInvoker",
    "ToolRegistry",
    "build_default_tool_registry",
    "tool_spec",
]
