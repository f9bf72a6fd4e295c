"""Model invocation contract used by the agentic loop and by condition nodes.

A :class:`ModelClient` performs one blocking request/response exchange with a
language model. Transport failures must surface as
:class:`~ai_office.agent_core.errors.ProviderError`; the loop treats them as
session-fatal and the job queue decides whether to retry.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence

from pydantic import Field

from ..schemas.base import FrozenSchema
from ..schemas.domain import ModelParams
from ..schemas.messages import ChatMessage, ContentBlock, TextBlock, ToolUseBlock

StopReason = Literal["end_turn", "tool_use", "max_tokens"]

# USD per million tokens, keyed by model family.
MODEL_PRICING: Dict[str, tuple[float, float]] = {
    "opus": (15.0, 75.0),
    "sonnet": (3.0, 15.0),
    "haiku": (0.8, 4.0),
}
DEFAULT_PRICING: tuple[float, float] = (3.0, 15.0)


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate the USD cost of one model call from its token usage."""
    input_price, output_price = DEFAULT_PRICING
    lowered = model.lower()
    for family, prices in MODEL_PRICING.items():
        if family in lowered:
            input_price, output_price = prices
            break
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


class ModelToolSpec(FrozenSchema):
    """Tool description advertised to the model."""

    name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ModelResponse(FrozenSchema):
    model: str
    content: List[ContentBlock] = Field(default_factory=list)
    stop_reason: StopReason = "end_turn"
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        return estimate_cost(self.model, self.input_tokens, self.output_tokens)

    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


class ModelClient(Protocol):
    async def call(
        self,
        params: ModelParams,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ModelToolSpec]] = None,
    ) -> ModelResponse:
        """Send one request to the model and return its response.

        Raises:
            ProviderError: when the provider cannot be reached or rejects the call.
        """
        ...
