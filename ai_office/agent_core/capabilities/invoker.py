from __future__ import annotations

"""Tool invoker.

``ToolInvoker.invoke`` turns one requested tool call into exactly one outcome:

- a successful ``ActionRecord`` carrying the tool output,
- a failed ``ActionRecord`` (invalid input, blocked by a rule, tool error or
  timeout); the capability is never reached for invalid or blocked calls,
- an ``ApprovalRequired`` value when the call must wait for a human decision.

Tool errors are soft failures: they are recorded and the loop decides what to
do (the safety governor counts consecutive failures). Consecutive external
calls of one session are spaced by ``tool_call_min_interval_ms``; the invoker
waits rather than rejects.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

from ..errors import ApprovalRequired, ToolPermissionError, ToolValidationError
from ..policy.approval_gate import ApprovalGate
from ..schemas.domain import ActionErrorKind, ActionRecord, ActionType, ApprovalDecision
from .base import ToolDefinition, ToolExecutionContext

logger = logging.getLogger(__name__)

InvocationOutcome = Union[ActionRecord, ApprovalRequired]


def _summarize_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _jsonable(output: Any) -> Any:
    if isinstance(output, BaseModel):
        return output.model_dump(mode="json")
    return output


class ToolInvoker:
    """Validate, gate, throttle and execute tool calls.

    Args:
        gate: approval gate consulted for every call not already approved.
        timeout_seconds: upper bound of one ``execute`` call.
        clock: monotonic clock in seconds; injectable for tests.
        sleep: coroutine used to wait out the per-session interval.
    """

    def __init__(
        self,
        gate: ApprovalGate,
        *,
        timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._gate = gate
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_call_at: Dict[str, float] = {}

    async def invoke(
        self,
        tool: ToolDefinition,
        raw_input: Optional[Dict[str, Any]],
        ctx: ToolExecutionContext,
        *,
        sequence: int = 0,
        approved: bool = False,
    ) -> InvocationOutcome:
        """
        Run one tool call.

        Args:
            tool: the tool to run.
            raw_input: arguments as produced by the model.
            ctx: the calling session's execution context.
            sequence: position of the resulting record in the session log.
            approved: True when a human already approved this exact call; the
                approval gate is skipped, validation and throttling are not.

        Returns:
            An ``ActionRecord``, or ``ApprovalRequired`` when the call must wait.
        """
        tool_input = dict(raw_input or {})

        try:
            args = tool.input_model.model_validate(tool_input)
        except ValidationError as e:
            err = ToolValidationError(tool.name, _summarize_validation_error(e))
            logger.info(f"Rejected invalid input for tool {tool.name} in session {ctx.session_id}: {err}")
            return self._record(ctx, tool, tool_input, sequence, error=str(err), kind=ActionErrorKind.validation)

        if not approved:
            decision = await self._gate.resolve(ctx.project_id, ctx.agent_id, tool.name)
            if decision == ApprovalDecision.always_block:
                err = ToolPermissionError(ctx.agent_id, tool.name)
                logger.info(f"Blocked tool call in session {ctx.session_id}: {err}")
                return self._record(ctx, tool, tool_input, sequence, error=str(err), kind=ActionErrorKind.permission)
            if decision == ApprovalDecision.require_approval:
                logger.info(f"Tool {tool.name} requires approval in session {ctx.session_id}")
                return ApprovalRequired(tool.name, tool_input)

        await self._throttle(ctx)

        started = self._clock()
        try:
            output = await asyncio.wait_for(tool.execute(args, ctx), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            return self._record(
                ctx,
                tool,
                tool_input,
                sequence,
                error=f"Tool '{tool.name}' timed out after {self._timeout_seconds}s",
                kind=ActionErrorKind.timeout,
                started=started,
            )
        except Exception as e:
            logger.warning(f"Tool {tool.name} failed in session {ctx.session_id}: {e}")
            return self._record(
                ctx,
                tool,
                tool_input,
                sequence,
                error=f"Tool '{tool.name}' failed: {type(e).__name__}: {e}",
                kind=ActionErrorKind.execution,
                started=started,
            )
        finally:
            self._last_call_at[ctx.session_id] = self._clock()

        logger.debug(f"Tool {tool.name} succeeded in session {ctx.session_id}")
        return self._record(ctx, tool, tool_input, sequence, output=_jsonable(output), started=started)

    def forget(self, session_id: str) -> None:
        """Drop the throttling state of a finished or suspended session."""
        self._last_call_at.pop(session_id, None)

    async def _throttle(self, ctx: ToolExecutionContext) -> None:
        last = self._last_call_at.get(ctx.session_id)
        if last is None or ctx.tool_call_min_interval_ms <= 0:
            return
        wait = ctx.tool_call_min_interval_ms / 1000 - (self._clock() - last)
        if wait > 0:
            logger.debug(f"Throttling session {ctx.session_id} for {wait:.3f}s")
            await self._sleep(wait)

    def _record(
        self,
        ctx: ToolExecutionContext,
        tool: ToolDefinition,
        tool_input: Dict[str, Any],
        sequence: int,
        *,
        output: Any = None,
        error: Optional[str] = None,
        kind: Optional[ActionErrorKind] = None,
        started: Optional[float] = None,
    ) -> ActionRecord:
        duration_ms = int((self._clock() - started) * 1000) if started is not None else 0
        return ActionRecord(
            session_id=ctx.session_id,
            sequence=sequence,
            type=ActionType.tool_call,
            tool_name=tool.name,
            input=tool_input,
            output=output,
            duration_ms=max(0, duration_ms),
            error=error,
            error_kind=kind,
        )
