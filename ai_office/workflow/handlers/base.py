from __future__ import annotations

"""Node handler protocol and output helpers.

A node handler implements one node kind. Every handler shares the contract::

    execute(config, input, ctx) -> Continue(NodeOutput) | Suspend

Handlers should:

- report expected failures as a ``failed`` ``NodeOutput`` whose ``data`` holds
  an ``error`` message and a ``failure_kind``,
- return ``Suspend`` instead of raising when the node has to wait,
- leave ordering, branching and persistence to the executor.
"""

import json
from typing import Any, ClassVar, Dict, Mapping, Optional, Protocol

from ai_office.agent_core.errors import FailureKind

from ..models import Continue, HandlerResult, NodeInput, NodeOutput, NodeStatus, NodeType, WorkflowRunContext


class NodeHandler(Protocol):
    """Protocol for node handler implementations."""

    node_type: ClassVar[NodeType]

    async def execute(self, config: Any, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult: ...


def completed(
    input: NodeInput,
    node_type: NodeType,
    data: Any = None,
    response: Optional[str] = None,
) -> Continue:
    return Continue(
        output=NodeOutput(
            node_id=input.node_id,
            node_type=node_type.value,
            status=NodeStatus.completed,
            data=data,
            response=response,
        )
    )


def failed(
    input: NodeInput,
    node_type: NodeType,
    error: str,
    kind: FailureKind,
    **extra: Any,
) -> Continue:
    return Continue(
        output=NodeOutput(
            node_id=input.node_id,
            node_type=node_type.value,
            status=NodeStatus.failed,
            data={**extra, "error": error, "failure_kind": kind.value},
        )
    )


def upstream_data(outputs: Mapping[str, NodeOutput]) -> Dict[str, Any]:
    """Upstream outputs as plain JSON-compatible data."""
    return {node_id: output.model_dump(mode="json") for node_id, output in outputs.items()}


def serialize_upstream(outputs: Mapping[str, NodeOutput]) -> str:
    return json.dumps(upstream_data(outputs), ensure_ascii=False)
