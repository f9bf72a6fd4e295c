from __future__ import annotations

"""Model context construction for agent sessions."""

import json
from typing import Any, Dict, List, Optional

from ..capabilities.registry import ToolRegistry
from ..schemas.domain import AgentContext, AgentProfile
from ..schemas.messages import ChatMessage

MAX_TOOL_RESULT_CHARS = 10_000
TRUNCATION_SUFFIX = "... [truncated]"
DEFAULT_TRIGGER_TEXT = "Start your work."


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


def format_memory(memory: Dict[str, Any]) -> str:
    lines = [f"[{key}]: {_to_text(value)}" for key, value in memory.items()]
    return "[System: Agent Memory]\n" + "\n".join(lines)


def format_trigger(payload: Optional[Dict[str, Any]]) -> str:
    if not payload:
        return DEFAULT_TRIGGER_TEXT
    return json.dumps(payload, indent=2, default=str, ensure_ascii=False)


def build_initial_messages(context: AgentContext) -> List[ChatMessage]:
    """Conversation for the first model call of a session.

    The persisted memory (when any) is prepended to the trigger message:

        [System: Agent Memory]
        [key]: value

        [User Trigger]
        <trigger payload as JSON>
    """
    trigger = format_trigger(context.trigger_payload)
    if context.memory:
        trigger = f"{format_memory(context.memory)}\n\n[User Trigger]\n{trigger}"
    return [*context.conversation_history, ChatMessage(role="user", content=trigger)]


def truncate_tool_result(value: Any, limit: int = MAX_TOOL_RESULT_CHARS) -> str:
    """Serialize a tool output for the model, capped at ``limit`` characters."""
    text = _to_text(value) if value is not None else ""
    if len(text) > limit:
        return text[:limit] + TRUNCATION_SUFFIX
    return text


def build_agent_context(
    agent: AgentProfile,
    tools: ToolRegistry,
    memory: Optional[Dict[str, Any]] = None,
    trigger_payload: Optional[Dict[str, Any]] = None,
) -> AgentContext:
    """Assemble the context of a new session from the agent's configuration."""
    return AgentContext(
        agent=agent,
        system_prompt=agent.resolved_system_prompt(),
        tool_names=[t.name for t in tools.get_by_names(agent.tools)],
        memory=dict(memory or {}),
        trigger_payload=trigger_payload,
    )
