from __future__ import annotations

"""Builtin tools.

Third-party integrations (CRM, messaging, spreadsheets) plug in as additional
``ToolDefinition`` implementations; the builtins below cover what the engine
itself needs: fetching a web page, sending e-mail and writing agent memory.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type

import httpx
from pydantic import BaseModel, Field

from .base import ToolExecutionContext
from .email import EmailSender
from .registry import ToolRegistry

MAX_FETCH_CHARS = 20_000


@dataclass(frozen=True)
class ToolDeps:
    """Runtime dependencies shared by builtin tools."""

    http_client: Optional[httpx.AsyncClient] = None
    email_sender: Optional[EmailSender] = None
    memory: Any = None


class WebFetchInput(BaseModel):
    url: str = Field(description="Absolute http(s) URL to fetch.")


class SendEmailInput(BaseModel):
    to: str = Field(description="Recipient address.")
    subject: str = Field(description="Subject line.")
    body: str = Field(description="Plain-text body.")


class RememberInput(BaseModel):
    key: str = Field(min_length=1, description="Memory key.")
    value: Any = Field(description="JSON value to store under the key.")


def _deps(ctx: ToolExecutionContext) -> ToolDeps:
    return ctx.deps if isinstance(ctx.deps, ToolDeps) else ToolDeps()


@dataclass(frozen=True)
class WebFetchTool:
    """Fetch a web page and return its (truncated) text."""

    name: ClassVar[str] = "web_fetch"
    description: ClassVar[str] = "Fetch the content of a web page over HTTP GET."
    input_model: ClassVar[Type[BaseModel]] = WebFetchInput
    requires_approval: ClassVar[bool] = False

    async def execute(self, args: WebFetchInput, ctx: ToolExecutionContext) -> Dict[str, Any]:
        client = _deps(ctx).http_client
        if client is not None:
            response = await client.get(args.url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as own_client:
                response = await own_client.get(args.url)
        response.raise_for_status()
        return {"url": args.url, "status_code": response.status_code, "content": response.text[:MAX_FETCH_CHARS]}


@dataclass(frozen=True)
class SendEmailTool:
    """Send an e-mail through the configured e-mail capability."""

    name: ClassVar[str] = "send_email"
    description: ClassVar[str] = "Send an e-mail to a recipient."
    input_model: ClassVar[Type[BaseModel]] = SendEmailInput
    requires_approval: ClassVar[bool] = True

    async def execute(self, args: SendEmailInput, ctx: ToolExecutionContext) -> Dict[str, Any]:
        sender = _deps(ctx).email_sender
        if sender is None:
            raise RuntimeError("e-mail delivery is not configured")
        return await sender.send(args.to, args.subject, args.body)


@dataclass(frozen=True)
class RememberTool:
    """Persist a key/value pair in the agent's memory."""

    name: ClassVar[str] = "remember"
    description: ClassVar[str] = "Store a fact in your long-term memory under a key."
    input_model: ClassVar[Type[BaseModel]] = RememberInput
    requires_approval: ClassVar[bool] = False

    async def execute(self, args: RememberInput, ctx: ToolExecutionContext) -> Dict[str, Any]:
        memory = _deps(ctx).memory
        if memory is None:
            raise RuntimeError("agent memory is not configured")
        await memory.set_memory(ctx.agent_id, ctx.project_id, args.key, args.value)
        return {"stored": args.key}


def build_default_tool_registry() -> ToolRegistry:
    """Build the process-wide tool registry with the builtin tools."""
    return ToolRegistry([WebFetchTool(), SendEmailTool(), RememberTool()])
