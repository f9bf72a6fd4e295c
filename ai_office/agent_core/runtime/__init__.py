"""LangGraph-based execution runtime for agent sessions.

The runtime drives one agent session through model calls and tool calls:

- every iteration is gated by the ``SafetyGovernor``,
- every tool call goes through the ``ToolInvoker`` (validation, approval gate,
  rate limiting, timeout),
- a tool call that needs a human decision suspends the session into a
  serializable ``SessionCheckpoint``.

The main entry point is ``AgenticLoopExecutor``.
"""

from .engine import AgenticLoopExecutor
from .models import LoopDeps

__all__ = [
    "AgenticLoopExecutor",
    "LoopDeps",
]
