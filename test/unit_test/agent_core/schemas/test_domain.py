from __future__ import annotations

import pytest

from ai_office.agent_core.errors import InvalidStateError
from ai_office.agent_core.schemas.domain import (
    ActionRecord,
    ActionType,
    AgentProfile,
    AgentSession,
    SafetyLimits,
    SessionStatus,
)


def _record(sequence: int, tokens: int = 0, error=None) -> ActionRecord:
    return ActionRecord(session_id="s1", sequence=sequence, type=ActionType.tool_call, tokens_used=tokens, error=error)


def test_record_updates_counters() -> None:
    session = AgentSession(agent_id="a1", project_id="p1")
    session.record(_record(0, tokens=10, error="boom"))
    session.record(_record(1, tokens=5, error="boom"))
    assert session.consecutive_errors == 2
    session.record(_record(2, tokens=1))

    assert session.action_count == 3
    assert session.total_tokens == 16
    assert session.consecutive_errors == 0


def test_closed_session_is_read_only() -> None:
    session = AgentSession(agent_id="a1", project_id="p1")
    session.close(SessionStatus.aborted, abort_reason="max_actions_exceeded")

    assert session.ended_at is not None
    with pytest.raises(InvalidStateError):
        session.record(_record(0))
    with pytest.raises(InvalidStateError):
        session.close(SessionStatus.completed)


def test_session_cannot_be_closed_into_running() -> None:
    with pytest.raises(InvalidStateError):
        AgentSession(agent_id="a1", project_id="p1").close(SessionStatus.running)


def test_action_record_is_immutable() -> None:
    record = _record(0)
    with pytest.raises(Exception):
        record.sequence = 5


def test_agent_limits_follow_budget_and_action_cap() -> None:
    agent = AgentProfile(id="a1", project_id="p1", name="Ada", budget=0.5, max_actions_per_session=7)
    limits = agent.safety_limits(SafetyLimits(max_duration_ms=1000))

    assert limits.max_tokens_per_session == 50_000
    assert limits.max_actions_per_session == 7
    assert limits.max_duration_ms == 1000


def test_agent_without_overrides_keeps_defaults() -> None:
    agent = AgentProfile(id="a1", project_id="p1", name="Ada", budget=None)
    defaults = SafetyLimits()
    assert agent.safety_limits(defaults) == defaults


def test_default_system_prompt_names_agent() -> None:
    agent = AgentProfile(id="a1", project_id="p1", name="Ada", archetype="researcher")
    assert agent.resolved_system_prompt().startswith("You are Ada, a researcher agent.")
    assert AgentProfile(id="a1", project_id="p1", name="Ada", system_prompt="Custom").resolved_system_prompt() == "Custom"
