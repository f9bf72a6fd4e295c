import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ai_office.server import main

pytestmark = pytest.mark.asyncio


@pytest.fixture
def worker_events():
    return []


@pytest.fixture
def patched(monkeypatch, worker_events):
    async def run_forever(stop: asyncio.Event) -> None:
        worker_events.append("started")
        await stop.wait()
        worker_events.append("stopped")

    container = SimpleNamespace(worker=SimpleNamespace(run_forever=run_forever))
    init_db = AsyncMock()
    close_container = AsyncMock()
    monkeypatch.setattr(main, "init_db", init_db)
    monkeypatch.setattr(main, "get_container", lambda: container)
    monkeypatch.setattr(main, "close_container", close_container)
    return SimpleNamespace(init_db=init_db, close_container=close_container)


async def test_lifespan_runs_embedded_worker(monkeypatch, patched, worker_events):
    monkeypatch.setattr(main.settings, "run_embedded_worker", True)

    async with main.lifespan(main.app):
        await asyncio.sleep(0)
        assert worker_events == ["started"]

    assert worker_events == ["started", "stopped"]
    patched.init_db.assert_awaited_once()
    patched.close_container.assert_awaited_once()


async def test_lifespan_without_worker(monkeypatch, patched, worker_events):
    monkeypatch.setattr(main.settings, "run_embedded_worker", False)

    async with main.lifespan(main.app):
        pass

    assert worker_events == []
    patched.close_container.assert_awaited_once()


async def test_lifespan_survives_database_errors(monkeypatch, patched):
    monkeypatch.setattr(main.settings, "run_embedded_worker", False)
    patched.init_db.side_effect = OSError("connection refused")

    async with main.lifespan(main.app):
        pass

    patched.close_container.assert_awaited_once()
