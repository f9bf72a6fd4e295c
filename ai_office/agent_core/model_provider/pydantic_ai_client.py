"""pydantic-ai backed implementation of :class:`ModelClient`.

The agentic loop owns tool execution, approval and safety accounting, so this
client does not use ``pydantic_ai.Agent`` (which would run tools itself).
Instead it performs a single request with pydantic-ai's direct model request
API and translates messages in both directions.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

from pydantic_ai import messages as pai
from pydantic_ai.direct import model_request
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import ToolDefinition

from ai_office.core.logging_config import get_logger

from ..errors import ProviderError
from ..schemas.domain import ModelParams
from ..schemas.messages import ChatMessage, ContentBlock, TextBlock, ToolResultBlock, ToolUseBlock
from .base import ModelResponse, ModelToolSpec, StopReason

logger = get_logger(__name__)


def to_pydantic_ai_messages(system_prompt: str, messages: Sequence[ChatMessage]) -> List[pai.ModelMessage]:
    """Translate a conversation into pydantic-ai request/response messages."""
    tool_names: Dict[str, str] = {}
    out: List[pai.ModelMessage] = []
    first = True
    for message in messages:
        if message.role == "assistant":
            parts: List[pai.ModelResponsePart] = []
            for block in message.blocks:
                if isinstance(block, TextBlock):
                    parts.append(pai.TextPart(content=block.text))
                elif isinstance(block, ToolUseBlock):
                    tool_names[block.id] = block.name
                    parts.append(pai.ToolCallPart(tool_name=block.name, args=dict(block.input), tool_call_id=block.id))
            out.append(pai.ModelResponse(parts=parts))
            continue

        request_parts: List[pai.ModelRequestPart] = []
        if first and system_prompt:
            request_parts.append(pai.SystemPromptPart(content=system_prompt))
        for block in message.blocks:
            if isinstance(block, TextBlock):
                request_parts.append(pai.UserPromptPart(content=block.text))
            elif isinstance(block, ToolResultBlock):
                content = f"Error: {block.content}" if block.is_error else block.content
                request_parts.append(
                    pai.ToolReturnPart(
                        tool_name=tool_names.get(block.tool_use_id, "unknown"),
                        content=content,
                        tool_call_id=block.tool_use_id,
                    )
                )
        out.append(pai.ModelRequest(parts=request_parts))
        first = False
    return out


def from_pydantic_ai_response(model: str, response: pai.ModelResponse) -> ModelResponse:
    """Translate a pydantic-ai response into a :class:`ModelResponse`."""
    content: List[ContentBlock] = []
    for part in response.parts:
        if isinstance(part, pai.TextPart):
            content.append(TextBlock(text=part.content))
        elif isinstance(part, pai.ToolCallPart):
            content.append(ToolUseBlock(id=part.tool_call_id, name=part.tool_name, input=part.args_as_dict()))

    stop_reason: StopReason = "end_turn"
    if any(isinstance(b, ToolUseBlock) for b in content):
        stop_reason = "tool_use"
    elif response.finish_reason == "length":
        stop_reason = "max_tokens"

    usage = response.usage
    return ModelResponse(
        model=model,
        content=content,
        stop_reason=stop_reason,
        input_tokens=usage.input_tokens or 0,
        output_tokens=usage.output_tokens or 0,
    )


class PydanticAIModelClient:
    """Single-shot model calls through pydantic-ai.

    Args:
        default_provider: provider prefix used when a model name carries none
            (``anthropic`` turns ``claude-sonnet-4-6`` into
            ``anthropic:claude-sonnet-4-6``).
        timeout_seconds: upper bound of one call.
    """

    def __init__(self, default_provider: str = "anthropic", timeout_seconds: float = 120.0) -> None:
        self._default_provider = default_provider
        self._timeout_seconds = timeout_seconds

    def _model_name(self, params: ModelParams) -> str:
        if ":" in params.model:
            return params.model
        return f"{params.provider or self._default_provider}:{params.model}"

    async def call(
        self,
        params: ModelParams,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ModelToolSpec]] = None,
    ) -> ModelResponse:
        model_name = self._model_name(params)
        request_parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(name=t.name, description=t.description, parameters_json_schema=t.input_schema)
                for t in (tools or [])
            ],
        )
        logger.debug(f"Model call: model={model_name}, messages={len(messages)}, tools={len(tools or [])}")
        try:
            response = await asyncio.wait_for(
                model_request(
                    model_name,
                    to_pydantic_ai_messages(system_prompt, messages),
                    model_settings=ModelSettings(temperature=params.temperature, max_tokens=params.max_tokens),
                    model_request_parameters=request_parameters,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(model_name, f"timed out after {self._timeout_seconds}s") from e
        except Exception as e:
            raise ProviderError(model_name, str(e) or type(e).__name__) from e
        return from_pydantic_ai_response(params.model, response)
