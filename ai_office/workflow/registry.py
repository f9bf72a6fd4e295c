from __future__ import annotations

"""Node handler registry.

The registry maps a node kind to its handler. One registry is built at process
start (see ``build_default_node_registry``) and passed into the executor;
registration stays open, so deployments can add or replace handlers.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

import httpx

from ai_office.agent_core.capabilities.email import EmailSender
from ai_office.agent_core.capabilities.registry import ToolRegistry
from ai_office.agent_core.errors import NoHandlerError
from ai_office.agent_core.model_provider.base import ModelClient
from ai_office.agent_core.runtime.engine import AgenticLoopExecutor
from ai_office.agent_core.schemas.domain import SafetyLimits
from ai_office.repos.interfaces import ActionLogRepository, AgentRepository, ToolApprovalRepository

from .handlers import (
    AgentNodeHandler,
    ApprovalNodeHandler,
    ConditionNodeHandler,
    DelayNodeHandler,
    NodeHandler,
    OutputNodeHandler,
    TriggerNodeHandler,
)
from .handlers.condition import DEFAULT_CONDITION_MODEL
from .models import HandlerResult, NodeInput, NodeType, WorkflowRunContext

logger = logging.getLogger(__name__)


def _key(node_type: Union[NodeType, str]) -> str:
    return node_type.value if isinstance(node_type, NodeType) else str(node_type)


class NodeHandlerRegistry:
    """
    In-memory mapping of node kinds to handlers.

    Notes:
        - ``register`` overwrites any existing handler for the node kind.
        - ``get`` and ``execute`` raise ``NoHandlerError`` for unknown kinds.
    """

    def __init__(self, handlers: Iterable[NodeHandler] = ()) -> None:
        self._handlers: Dict[str, NodeHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: NodeHandler) -> None:
        key = _key(handler.node_type)
        if key in self._handlers:
            logger.debug(f"Replacing handler for node type {key}")
        self._handlers[key] = handler

    def has(self, node_type: Union[NodeType, str]) -> bool:
        return _key(node_type) in self._handlers

    def get(self, node_type: Union[NodeType, str]) -> NodeHandler:
        handler = self._handlers.get(_key(node_type))
        if handler is None:
            raise NoHandlerError(_key(node_type))
        return handler

    async def execute(
        self,
        node_type: Union[NodeType, str],
        config: Any,
        input: NodeInput,
        ctx: WorkflowRunContext,
    ) -> HandlerResult:
        return await self.get(node_type).execute(config, input, ctx)


def build_default_node_registry(
    *,
    agents: AgentRepository,
    tools: ToolRegistry,
    executor: AgenticLoopExecutor,
    tool_approvals: ToolApprovalRepository,
    model_client: Optional[ModelClient] = None,
    condition_model: str = DEFAULT_CONDITION_MODEL,
    default_limits: Optional[SafetyLimits] = None,
    action_logs: Optional[ActionLogRepository] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    email_sender: Optional[EmailSender] = None,
    webhook_timeout_seconds: float = 10.0,
) -> NodeHandlerRegistry:
    """Build the process-wide registry with one handler per node kind."""
    return NodeHandlerRegistry(
        [
            TriggerNodeHandler(),
            AgentNodeHandler(
                agents=agents,
                tools=tools,
                executor=executor,
                tool_approvals=tool_approvals,
                default_limits=default_limits or SafetyLimits(),
                action_logs=action_logs,
            ),
            ConditionNodeHandler(model_client=model_client, model=condition_model),
            ApprovalNodeHandler(),
            DelayNodeHandler(),
            OutputNodeHandler(
                http_client=http_client,
                email_sender=email_sender,
                timeout_seconds=webhook_timeout_seconds,
            ),
        ]
    )
