"""
Service Container.

Builds the agent engine, the workflow orchestrator and the job worker from the
settings and one SQLAlchemy session factory. The API server and the worker
share the same container.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ai_office.agent_core.capabilities import ToolDeps, ToolInvoker, build_default_tool_registry
from ai_office.agent_core.capabilities.email import HttpEmailRelay
from ai_office.agent_core.model_provider.base import ModelClient
from ai_office.agent_core.model_provider.pydantic_ai_client import PydanticAIModelClient
from ai_office.agent_core.policy.approval_gate import ApprovalGate
from ai_office.agent_core.runtime import AgenticLoopExecutor, LoopDeps
from ai_office.agent_core.service import AgentExecutionService, AgentServiceDeps
from ai_office.core.config import Settings, settings
from ai_office.core.logging_config import get_logger
from ai_office.repos.sql import SqlRepos, build_sql_repos
from ai_office.worker.runner import JobWorker
from ai_office.workflow.executor import WorkflowExecutor
from ai_office.workflow.registry import build_default_node_registry
from ai_office.workflow.service import WorkflowRunService, WorkflowServiceDeps

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceContainer:
    repos: SqlRepos
    agent_service: AgentExecutionService
    workflow_service: WorkflowRunService
    worker: JobWorker
    http_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings = settings,
    *,
    model_client: Optional[ModelClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    """Wire repositories, tools, the agent loop, node handlers and services."""
    repos = build_sql_repos(session_factory)
    http_client = http_client or httpx.AsyncClient(timeout=config.webhook_timeout_seconds)
    model_client = model_client or PydanticAIModelClient(
        default_provider=config.model_provider,
        timeout_seconds=config.model_timeout_seconds,
    )
    email_sender = None
    if config.email_relay_url:
        email_sender = HttpEmailRelay(
            url=config.email_relay_url,
            sender=config.email_sender,
            timeout_seconds=config.webhook_timeout_seconds,
            client=http_client,
        )
    else:
        logger.info("AI_OFFICE_EMAIL_RELAY_URL is not set; e-mail delivery is disabled")

    tools = build_default_tool_registry()
    invoker = ToolInvoker(ApprovalGate(repos.approval_rules, tools), timeout_seconds=config.tool_timeout_seconds)
    loop = AgenticLoopExecutor(
        LoopDeps(
            model_client=model_client,
            tools=tools,
            invoker=invoker,
            tool_deps=ToolDeps(http_client=http_client, email_sender=email_sender, memory=repos.agents),
        )
    )
    limits = config.safety_limits

    agent_service = AgentExecutionService(
        AgentServiceDeps(
            agents=repos.agents,
            action_logs=repos.action_logs,
            tool_approvals=repos.tool_approvals,
            jobs=repos.jobs,
            tools=tools,
            executor=loop,
            default_limits=limits,
        )
    )

    node_registry = build_default_node_registry(
        agents=repos.agents,
        tools=tools,
        executor=loop,
        tool_approvals=repos.tool_approvals,
        model_client=model_client,
        condition_model=config.condition_model,
        default_limits=limits,
        action_logs=repos.action_logs,
        http_client=http_client,
        email_sender=email_sender,
        webhook_timeout_seconds=config.webhook_timeout_seconds,
    )
    workflow_service = WorkflowRunService(
        WorkflowServiceDeps(
            workflows=repos.workflows,
            runs=repos.workflow_runs,
            jobs=repos.jobs,
            tool_approvals=repos.tool_approvals,
            executor=WorkflowExecutor(node_registry, node_runs=repos.node_runs),
        )
    )

    worker_config = config.worker
    worker = JobWorker(
        repos.jobs,
        agents=agent_service,
        workflows=workflow_service,
        poll_interval_seconds=worker_config.poll_interval_seconds,
        batch_size=worker_config.batch_size,
        max_attempts=worker_config.max_attempts,
        backoff_base_seconds=worker_config.backoff_base_seconds,
    )
    return ServiceContainer(
        repos=repos,
        agent_service=agent_service,
        workflow_service=workflow_service,
        worker=worker,
        http_client=http_client,
    )
