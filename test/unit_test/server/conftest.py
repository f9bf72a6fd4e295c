from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ai_office.server.main import app
from ai_office.server.services.deps import get_container


@pytest.fixture
def container() -> SimpleNamespace:
    """Stand-in for the service container with mocked services."""
    return SimpleNamespace(
        repos=SimpleNamespace(tool_approvals=AsyncMock()),
        agent_service=AsyncMock(),
        workflow_service=AsyncMock(),
    )


@pytest_asyncio.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_container] = lambda: container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac
    app.dependency_overrides.clear()
