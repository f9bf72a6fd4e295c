from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Optional

import httpx

from ai_office.agent_core.capabilities.email import EmailSender
from ai_office.agent_core.errors import FailureKind

from ..models import HandlerResult, NodeInput, NodeType, OutputNodeConfig, OutputType, WorkflowRunContext
from ..templating import resolve_template
from .base import completed, failed, serialize_upstream, upstream_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputNodeHandler:
    """
    Deliver the run's result.

    The content is ``template_content`` resolved against the run variables, or
    the serialized upstream outputs when no template is set. The node status
    reflects delivery success.
    """

    node_type: ClassVar[NodeType] = NodeType.output
    http_client: Optional[httpx.AsyncClient] = None
    email_sender: Optional[EmailSender] = None
    timeout_seconds: float = 10.0

    async def execute(self, config: OutputNodeConfig, input: NodeInput, ctx: WorkflowRunContext) -> HandlerResult:
        if config.template_content:
            content = resolve_template(config.template_content, input.variables)
        else:
            content = serialize_upstream(input.upstream_outputs)

        if config.output_type == OutputType.webhook:
            return await self._webhook(config, input, ctx, content)
        if config.output_type == OutputType.email:
            return await self._email(config, input, ctx, content)

        logger.info(f"[workflow-output] Run={ctx.workflow_run_id} | {content}")
        return completed(input, self.node_type, {"output_type": OutputType.log.value, "content": content})

    async def _webhook(
        self, config: OutputNodeConfig, input: NodeInput, ctx: WorkflowRunContext, content: str
    ) -> HandlerResult:
        if not config.destination:
            return failed(input, self.node_type, "Webhook destination URL is required", FailureKind.configuration)

        body = {
            "workflowRunId": ctx.workflow_run_id,
            "content": content,
            "upstreamOutputs": upstream_data(input.upstream_outputs),
        }
        try:
            if self.http_client is not None:
                response = await self.http_client.post(config.destination, json=body, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(config.destination, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"Webhook delivery to {config.destination} failed for run {ctx.workflow_run_id}: {e}")
            return failed(
                input,
                self.node_type,
                f"Webhook delivery failed: {type(e).__name__}: {e}",
                FailureKind.tool,
                output_type=OutputType.webhook.value,
                destination=config.destination,
            )

        data = {
            "output_type": OutputType.webhook.value,
            "status_code": response.status_code,
            "destination": config.destination,
        }
        if not response.is_success:
            return failed(
                input,
                self.node_type,
                f"Webhook responded with HTTP {response.status_code}",
                FailureKind.tool,
                **data,
            )
        return completed(input, self.node_type, data)

    async def _email(
        self, config: OutputNodeConfig, input: NodeInput, ctx: WorkflowRunContext, content: str
    ) -> HandlerResult:
        if not config.destination:
            return failed(input, self.node_type, "E-mail recipient is required", FailureKind.configuration)
        if self.email_sender is None:
            return failed(input, self.node_type, "E-mail delivery is not configured", FailureKind.configuration)

        subject = config.label or f"Workflow run {ctx.workflow_run_id}"
        try:
            receipt = await self.email_sender.send(config.destination, subject, content)
        except Exception as e:
            logger.warning(f"E-mail delivery to {config.destination} failed for run {ctx.workflow_run_id}: {e}")
            return failed(
                input,
                self.node_type,
                f"E-mail delivery failed: {type(e).__name__}: {e}",
                FailureKind.tool,
                output_type=OutputType.email.value,
                destination=config.destination,
            )
        return completed(
            input,
            self.node_type,
            {
                "output_type": OutputType.email.value,
                "destination": config.destination,
                "content": content,
                "receipt": receipt,
            },
        )
