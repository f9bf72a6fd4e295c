from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, ClassVar

from ..models import DelayNodeConfig, HandlerResult, NodeInput, NodeType, Suspend, WorkflowRunContext
from .base import completed

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DelayNodeHandler:
    """
    Pause the run for ``duration`` x ``unit``.

    The first visit suspends with the absolute resume time; the visit that
    resumes the run completes the node without waiting again.
    """

    node_type: ClassVar[NodeType] = NodeType.delay
    clock: Callable[[], datetime] = field(default=_utc_now)

    async def execute(self, config: DelayNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        if input.resumed:
            return completed(input, self.node_type, {"delay_ms": config.delay_ms, "resumed_at": self.clock().isoformat()})

        suspension = Suspend.for_delay(input.node_id, config.delay_ms, now=self.clock())
        logger.info(
            f"Run {ctx.workflow_run_id} delayed at node {input.node_id} "
            f"for {config.delay_ms}ms (until {suspension.resume_info.resume_at.isoformat()})"
        )
        return suspension
