from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from ai_office.agent_core.errors import AgentBusyError, ProviderError
from ai_office.worker.jobs import AgentJob, JobStatus, QueuedJob, WorkflowJob
from ai_office.worker.runner import JobWorker

pytestmark = pytest.mark.asyncio


@pytest.fixture
def agents() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def workflows() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def worker(repos, agents, workflows, clock) -> JobWorker:
    return JobWorker(repos.jobs, agents=agents, workflows=workflows, max_attempts=3, backoff_base_seconds=5.0, clock=clock)


def _agent_job(clock) -> QueuedJob:
    return QueuedJob.for_agent(AgentJob(agent_id="agent-1", project_id="project-1"), run_at=clock.now)


def _workflow_job(clock) -> QueuedJob:
    job = WorkflowJob(workflow_id="wf-1", workflow_run_id="run-1", project_id="project-1")
    return QueuedJob.for_workflow(job, run_at=clock.now)


async def test_dispatches_by_kind_and_completes(worker, repos, agents, workflows, clock) -> None:
    agent_job = _agent_job(clock)
    workflow_job = _workflow_job(clock)
    await repos.jobs.enqueue(agent_job)
    await repos.jobs.enqueue(workflow_job)

    assert await worker.run_once() == 2

    agents.execute.assert_awaited_once()
    assert agents.execute.await_args.args[0].agent_id == "agent-1"
    workflows.process.assert_awaited_once()
    assert workflows.process.await_args.args[0].workflow_run_id == "run-1"
    assert repos.jobs.jobs[agent_job.id].status == JobStatus.done
    assert repos.jobs.jobs[workflow_job.id].status == JobStatus.done


async def test_future_jobs_are_not_claimed(worker, repos, agents, clock) -> None:
    job = _agent_job(clock)
    job.run_at = clock.now + timedelta(minutes=1)
    await repos.jobs.enqueue(job)

    assert await worker.run_once() == 0
    agents.execute.assert_not_awaited()


async def test_busy_agent_defers_job_without_counting_attempt(worker, repos, agents, clock) -> None:
    agents.execute.side_effect = AgentBusyError("agent-1")
    job = _agent_job(clock)
    await repos.jobs.enqueue(job)

    for _ in range(4):
        await worker.run_once()
        clock.advance(seconds=5)

    stored = repos.jobs.jobs[job.id]
    assert stored.status == JobStatus.pending
    assert stored.attempts == 0
    assert "not idle" in stored.last_error
    assert agents.execute.await_count == 4

    agents.execute.side_effect = None
    await worker.run_once()
    assert stored.status == JobStatus.done


async def test_provider_error_retries_with_backoff_then_buries(worker, repos, agents, clock) -> None:
    agents.execute.side_effect = ProviderError("anthropic", "overloaded")
    job = _agent_job(clock)
    await repos.jobs.enqueue(job)

    await worker.run_once()
    stored = repos.jobs.jobs[job.id]
    assert stored.status == JobStatus.pending
    assert stored.attempts == 1
    assert stored.run_at == clock.now + timedelta(seconds=5)
    assert "overloaded" in stored.last_error

    clock.advance(seconds=5)
    await worker.run_once()
    assert stored.status == JobStatus.pending
    assert stored.run_at == clock.now + timedelta(seconds=10)

    clock.advance(seconds=10)
    await worker.run_once()
    assert stored.status == JobStatus.dead
    assert stored.attempts == 3
    assert agents.execute.await_count == 3


async def test_other_errors_bury_immediately(worker, repos, workflows, clock) -> None:
    workflows.process.side_effect = KeyError("outputs")
    job = _workflow_job(clock)
    await repos.jobs.enqueue(job)

    await worker.run_once()

    stored = repos.jobs.jobs[job.id]
    assert stored.status == JobStatus.dead
    assert stored.last_error == "KeyError: 'outputs'"


async def test_run_forever_sleeps_when_idle_and_stops(repos, agents, workflows, clock) -> None:
    stop = asyncio.Event()
    sleeps = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 2:
            stop.set()

    worker = JobWorker(
        repos.jobs, agents=agents, workflows=workflows, poll_interval_seconds=0.5, clock=clock, sleep=fake_sleep
    )
    await repos.jobs.enqueue(_agent_job(clock))

    await worker.run_forever(stop)

    assert sleeps == [0.5, 0.5]
    agents.execute.assert_awaited_once()


async def test_run_forever_survives_polling_errors(repos, agents, workflows, clock) -> None:
    stop = asyncio.Event()
    calls = []

    async def broken_claim(now, limit):
        calls.append(now)
        raise ConnectionError("database unavailable")

    async def fake_sleep(seconds: float) -> None:
        stop.set()

    repos.jobs.claim_due = broken_claim
    worker = JobWorker(repos.jobs, agents=agents, workflows=workflows, clock=clock, sleep=fake_sleep)

    await worker.run_forever(stop)

    assert len(calls) == 1
