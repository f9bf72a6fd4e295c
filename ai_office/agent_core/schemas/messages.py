"""Conversation messages exchanged with the model.

Messages are plain pydantic values so that a suspended session can be
serialized with ``model_dump(mode="json")`` and rebuilt in another process.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Union

from pydantic import Field
from typing_extensions import Annotated

from .base import FrozenSchema


class TextBlock(FrozenSchema):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(FrozenSchema):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(FrozenSchema):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock, ToolResultBlock], Field(discriminator="type")]


class ChatMessage(FrozenSchema):
    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]

    @property
    def blocks(self) -> List[ContentBlock]:
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]
