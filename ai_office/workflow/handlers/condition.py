from __future__ import annotations

"""Condition node: evaluates a predicate over upstream outputs.

Strategies
----------

- ``llm_eval``: asks a small model a yes/no question about the upstream data;
  true iff the answer starts with ``YES``.
- ``contains``: substring match against the serialized upstream data.
- ``json_path``: dot-path lookup into the upstream outputs, compared as a
  string with ``expected_value``.

The boolean lands in ``data``; the executor follows the ``yes`` or ``no``
handle accordingly. A false condition is a normal completion, not a failure.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from ai_office.agent_core.model_provider.base import ModelClient
from ai_office.agent_core.schemas.domain import ModelParams
from ai_office.agent_core.schemas.messages import ChatMessage

from ..models import ConditionNodeConfig, ConditionType, HandlerResult, NodeInput, NodeType, WorkflowRunContext
from .base import completed, serialize_upstream, upstream_data

logger = logging.getLogger(__name__)

CONDITION_SYSTEM_PROMPT = (
    "You are a condition evaluator. Given data and a condition, respond with exactly YES or NO. No explanation."
)
DEFAULT_CONDITION_MODEL = "claude-haiku-4-5-20251001"

_MISSING = object()


def lookup_path(data: Any, path: str) -> Any:
    """Follow a dot-separated path through nested mappings."""
    value = data
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return _MISSING
    return value


def as_comparable(value: Any) -> str:
    """String form used to compare a looked-up value with ``expected_value``."""
    if value is _MISSING:
        return "undefined"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


@dataclass(frozen=True)
class ConditionNodeHandler:
    node_type: ClassVar[NodeType] = NodeType.condition
    model_client: Optional[ModelClient] = None
    model: str = DEFAULT_CONDITION_MODEL

    async def execute(self, config: ConditionNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        if config.condition_type == ConditionType.llm_eval:
            result = await self._llm_eval(config, input)
        elif config.condition_type == ConditionType.contains:
            result = config.condition in serialize_upstream(input.upstream_outputs)
        else:
            result = False
            if config.json_path and config.expected_value:
                value = lookup_path(upstream_data(input.upstream_outputs), config.json_path)
                result = as_comparable(value) == config.expected_value

        logger.debug(
            f"Condition {input.node_id} ({config.condition_type.value}) in run {ctx.workflow_run_id}: {result}"
        )
        return completed(input, self.node_type, result)

    async def _llm_eval(self, config: ConditionNodeConfig, input: NodeInput) -> bool:
        if self.model_client is None:
            raise RuntimeError("llm_eval conditions need a model client")
        prompt = (
            f"Given this data:\n{serialize_upstream(input.upstream_outputs)}\n\n"
            f"Evaluate: {config.condition}\n\nRespond YES or NO."
        )
        response = await self.model_client.call(
            ModelParams(model=self.model, temperature=0.0, max_tokens=10),
            CONDITION_SYSTEM_PROMPT,
            [ChatMessage(role="user", content=prompt)],
        )
        return response.text().strip().upper().startswith("YES")
