from __future__ import annotations

"""Job worker.

``JobWorker`` polls the persistent job queue for due jobs and dispatches them
by kind:

- ``agent_execution`` -> ``AgentExecutionService.execute``
- ``workflow_execution`` -> ``WorkflowRunService.process``

Retry policy
------------

Only ``ProviderError`` is retried: the job goes back to pending with an
exponential backoff (``backoff_base_seconds * 2 ** attempts``) until
``max_attempts`` attempts were made, after which it is marked dead. Any other
error marks the job dead immediately; it needs an operator, not a retry.

``AgentBusyError`` (a resume job whose agent is still busy) defers the job by
``backoff_base_seconds`` without counting an attempt.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from ai_office.agent_core.errors import AgentBusyError, ProviderError
from ai_office.agent_core.service import AgentExecutionService
from ai_office.repos.interfaces import JobQueue
from ai_office.workflow.service import WorkflowRunService

from .jobs import JobKind, QueuedJob

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobWorker:
    """Poll, dispatch and settle queued jobs.

    Args:
        jobs: the persistent job queue.
        agents: service handling agent jobs.
        workflows: service handling workflow jobs.
        poll_interval_seconds: idle wait between empty polls.
        batch_size: maximum jobs claimed per poll.
        max_attempts: attempts before a retryable job is marked dead.
        backoff_base_seconds: delay before the first retry.
    """

    def __init__(
        self,
        jobs: JobQueue,
        *,
        agents: AgentExecutionService,
        workflows: WorkflowRunService,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 10,
        max_attempts: int = 3,
        backoff_base_seconds: float = 5.0,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._jobs = jobs
        self._agents = agents
        self._workflows = workflows
        self._poll_interval_seconds = poll_interval_seconds
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._backoff_base_seconds = backoff_base_seconds
        self._clock = clock
        self._sleep = sleep

    async def run_once(self) -> int:
        """Process every job due now (up to ``batch_size``); return how many ran."""
        due = await self._jobs.claim_due(self._clock(), self._batch_size)
        for job in due:
            await self._handle(job)
        return len(due)

    async def run_forever(self, stop: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop`` is set."""
        logger.info(f"Job worker started (poll={self._poll_interval_seconds}s, batch={self._batch_size})")
        while stop is None or not stop.is_set():
            try:
                processed = await self.run_once()
            except Exception:
                logger.error("Job polling failed", exc_info=True)
                processed = 0
            if processed == 0:
                await self._sleep(self._poll_interval_seconds)
        logger.info("Job worker stopped")

    async def _handle(self, job: QueuedJob) -> None:
        try:
            await self._dispatch(job)
        except ProviderError as e:
            attempts = job.attempts + 1
            if attempts >= self._max_attempts:
                logger.error(f"Job {job.id} ({job.kind.value}) failed after {attempts} attempts: {e}")
                await self._jobs.bury(job.id, error=str(e))
                return
            delay = self._backoff_base_seconds * (2**job.attempts)
            logger.warning(
                f"Job {job.id} ({job.kind.value}) failed; retrying in {delay}s "
                f"(attempt {attempts}/{self._max_attempts}): {e}"
            )
            await self._jobs.retry(job.id, run_at=self._clock() + timedelta(seconds=delay), error=str(e))
            return
        except AgentBusyError as e:
            logger.info(f"Job {job.id} ({job.kind.value}) deferred {self._backoff_base_seconds}s: {e}")
            run_at = self._clock() + timedelta(seconds=self._backoff_base_seconds)
            await self._jobs.defer(job.id, run_at=run_at, reason=str(e))
            return
        except Exception as e:
            logger.exception(f"Job {job.id} ({job.kind.value}) failed")
            await self._jobs.bury(job.id, error=f"{type(e).__name__}: {e}")
            return
        await self._jobs.complete(job.id)
        logger.debug(f"Job {job.id} ({job.kind.value}) done")

    async def _dispatch(self, job: QueuedJob) -> None:
        if job.kind == JobKind.agent_execution:
            await self._agents.execute(job.agent_job())
        elif job.kind == JobKind.workflow_execution:
            await self._workflows.process(job.workflow_job())
        else:
            raise ValueError(f"unknown job kind: {job.kind}")
