from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from ..models import HandlerResult, NodeInput, NodeType, TriggerNodeConfig, WorkflowRunContext
from .base import completed


@dataclass(frozen=True)
class TriggerNodeHandler:
    """Entry node: completes immediately and echoes the run variables."""

    node_type: ClassVar[NodeType] = NodeType.trigger

    async def execute(self, config: TriggerNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        data = {"trigger_type": config.trigger_type.value, "variables": dict(ctx.variables)}
        if config.event_name:
            data["event_name"] = config.event_name
        return completed(input, self.node_type, data)
