"""
Service Dependencies.

Provides the process-wide ``ServiceContainer`` and the services it holds to API
endpoints. The container is built lazily on first use; the application
lifespan builds it eagerly and closes it on shutdown.
"""

from typing import Annotated, Optional

from fastapi import Depends

from ai_office.agent_core.service import AgentExecutionService
from ai_office.server.core.database import async_session_maker
from ai_office.workflow.service import WorkflowRunService

from .container import ServiceContainer, build_services

_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = build_services(async_session_maker)
    return _container


async def close_container() -> None:
    global _container
    if _container is not None:
        await _container.aclose()
        _container = None


def get_workflow_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> WorkflowRunService:
    return container.workflow_service


def get_agent_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> AgentExecutionService:
    return container.agent_service


WorkflowServiceDep = Annotated[WorkflowRunService, Depends(get_workflow_service)]
AgentServiceDep = Annotated[AgentExecutionService, Depends(get_agent_service)]
ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
