from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, ClassVar

from ai_office.agent_core.errors import FailureKind

from ..models import ApprovalNodeConfig, HandlerResult, NodeInput, NodeType, Suspend, WorkflowRunContext
from .base import completed, failed

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ApprovalNodeHandler:
    """
    Human review gate.

    The node never completes on its own: it suspends until a decision arrives
    through the resume path. An approving decision completes the node with the
    decision in ``data``; a rejection fails it.
    """

    node_type: ClassVar[NodeType] = NodeType.approval
    clock: Callable[[], datetime] = field(default=_utc_now)

    async def execute(self, config: ApprovalNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        decision = input.approval if input.resumed else None
        if decision is None:
            logger.info(
                f"Run {ctx.workflow_run_id} waiting for {config.approver_role} approval at node {input.node_id}"
            )
            return Suspend.for_approval(
                input.node_id,
                approver_role=config.approver_role,
                timeout_minutes=config.timeout_minutes,
                auto_action=config.auto_action,
                now=self.clock(),
            )

        data = {
            "approved": decision.approved,
            "approver_role": config.approver_role,
            "decided_by": decision.decided_by,
            "note": decision.note,
            "decided_at": decision.decided_at.isoformat(),
        }
        if not decision.approved:
            who = decision.decided_by or config.approver_role
            return failed(input, self.node_type, f"Rejected by {who}", FailureKind.rejected, **data)
        return completed(input, self.node_type, data)
