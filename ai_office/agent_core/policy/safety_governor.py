from __future__ import annotations

"""Safety governor for agent sessions.

``SafetyGovernor`` is a pure policy object. Given a session's running counters
and its ``SafetyLimits`` it answers whether the loop may run another step. It
never retries and never mutates the session; the loop applies the verdict.

Checks run in a fixed priority order and the first tripped limit wins:

1. active wall-clock time >= ``max_duration_ms``       -> ``duration_exceeded``
2. ``action_count`` >= ``max_actions_per_session``      -> ``max_actions_exceeded``
3. ``total_tokens`` >= ``max_tokens_per_session``       -> ``max_tokens_exceeded``
4. ``consecutive_errors`` >= ``max_consecutive_errors`` -> ``too_many_errors``
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from ..schemas.domain import AbortReason, AgentSession, SafetyLimits
from .models import CONTINUE, Abort, GovernorVerdict

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SafetyGovernor:
    """Decide whether a session may continue.

    Args:
        clock: returns the current UTC time; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    def evaluate(self, session: AgentSession, limits: SafetyLimits) -> GovernorVerdict:
        elapsed = session.elapsed_ms(self._clock())
        if elapsed >= limits.max_duration_ms:
            return self._abort(
                session,
                AbortReason.duration_exceeded,
                f"session ran for {elapsed}ms, limit is {limits.max_duration_ms}ms",
            )
        if session.action_count >= limits.max_actions_per_session:
            return self._abort(
                session,
                AbortReason.max_actions_exceeded,
                f"{session.action_count} actions recorded, limit is {limits.max_actions_per_session}",
            )
        if session.total_tokens >= limits.max_tokens_per_session:
            return self._abort(
                session,
                AbortReason.max_tokens_exceeded,
                f"{session.total_tokens} tokens used, limit is {limits.max_tokens_per_session}",
            )
        if session.consecutive_errors >= limits.max_consecutive_errors:
            return self._abort(
                session,
                AbortReason.too_many_errors,
                f"{session.consecutive_errors} consecutive failed actions, limit is {limits.max_consecutive_errors}",
            )
        return CONTINUE

    @staticmethod
    def _abort(session: AgentSession, reason: AbortReason, detail: str) -> Abort:
        logger.info(f"Safety limit tripped for session {session.session_id}: {reason.value} ({detail})")
        return Abort(reason=reason, detail=detail)
