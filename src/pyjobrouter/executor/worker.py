"""
Job worker: ingest a job and dispatch its follow-ups.

    handle_job(job)
        ├─ before_handle_job(job)
        ├─ router.ingest(job, ctx)
        ├─ after_handle_job(status, result)
        └─ status == needsRetry → scheduler.send_many(next_jobs)

The worker has no loop of its own. Whatever receives jobs (a queue
consumer, an HTTP endpoint, a test harness) calls handle_job() or wraps
its input with create_handler().

Terminal results are returned to the caller, which owns persisting them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pyjobrouter.executor.router import IngestResult, JobRouter
from pyjobrouter.executor.scheduler import JobScheduler
from pyjobrouter.models.record import ExecutionRecord
from pyjobrouter.models.status import IngestStatus

logger = logging.getLogger(__name__)

__all__ = ["JobWorker", "JobBatch"]


@dataclass
class JobBatch:
    """Jobs sharing one context, as returned by a create_handler() mapper."""

    jobs: list[ExecutionRecord]
    ctx: Any = None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class JobWorker:
    """
    Connects a JobRouter to a JobScheduler.

    Args:
        router: Engine computing ingestions
        scheduler: Transport for follow-up jobs
        create_ctx: Optional context factory used when handle_job() gets no ctx
        before_handle_job: Optional callback receiving the job
        after_handle_job: Optional callback receiving (status, result)
    """

    def __init__(
        self,
        router: JobRouter,
        scheduler: JobScheduler,
        create_ctx: Callable[[], Any] | None = None,
        before_handle_job: Callable[[ExecutionRecord], Any] | None = None,
        after_handle_job: Callable[[IngestStatus, IngestResult], Any] | None = None,
    ):
        self._router = router
        self._scheduler = scheduler
        self._create_ctx = create_ctx
        self._before_handle_job = before_handle_job
        self._after_handle_job = after_handle_job

    @property
    def router(self) -> JobRouter:
        return self._router

    @property
    def scheduler(self) -> JobScheduler:
        return self._scheduler

    async def handle_job(self, job: ExecutionRecord, ctx: Any = None) -> IngestResult:
        """
        Ingest one job and send its follow-ups when it needs a retry.

        Raises:
            InvariantViolationError: If the job is in a terminal state
            SchedulerError: If sending follow-ups failed
        """
        if ctx is None and self._create_ctx is not None:
            ctx = await _maybe_await(self._create_ctx())

        if self._before_handle_job is not None:
            await _maybe_await(self._before_handle_job(job))

        result = await self._router.ingest(job, ctx)

        if self._after_handle_job is not None:
            await _maybe_await(self._after_handle_job(result.status, result))

        if result.status == IngestStatus.NEEDS_RETRY and result.next_jobs:
            logger.info(
                f"Job {job.event.job_id} needs retry, sending {len(result.next_jobs)} follow-up(s)"
            )
            await self._scheduler.send_many(result.next_jobs)
        elif result.status == IngestStatus.MAX_RETRIES_EXCEEDED:
            logger.warning(f"Job {job.event.job_id} gave up: max retries exceeded")

        return result

    async def handle_many(
        self, jobs: Sequence[ExecutionRecord], ctx: Any = None
    ) -> list[IngestResult]:
        """Handle jobs concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.handle_job(job, ctx) for job in jobs)))

    def create_handler(
        self,
        map_input_to_jobs: Callable[..., JobBatch | list[tuple[ExecutionRecord, Any]]],
    ) -> Callable[..., Awaitable[list[IngestResult]]]:
        """
        Adapt arbitrary input into a job handling coroutine function.

        The mapper (sync or async) receives the handler's arguments and
        returns either a JobBatch (jobs sharing one ctx) or a list of
        (job, ctx) pairs.

        Example:
            ```python
            handler = worker.create_handler(
                lambda message: JobBatch(jobs=[ExecutionRecord.from_json(message.body)])
            )
            await handler(message)
            ```
        """

        async def handler(*args: Any, **kwargs: Any) -> list[IngestResult]:
            mapped = await _maybe_await(map_input_to_jobs(*args, **kwargs))
            if isinstance(mapped, JobBatch):
                return await self.handle_many(mapped.jobs, mapped.ctx)
            return list(await asyncio.gather(*(self.handle_job(job, ctx) for job, ctx in mapped)))

        return handler
