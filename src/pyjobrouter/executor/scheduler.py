"""Job scheduler: hands records to a caller-provided transport.

The scheduler does not own a queue or a timer. It builds records and calls
`send(jobs)`, an async callable supplied by the application (a message
queue producer, a task table insert, an in-memory list in tests). The
transport reads get_delay_seconds() to decide when each job becomes due.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pyjobrouter.models.record import (
    ErrorRetryable,
    ExecutionRecord,
    Sleeping,
    create_initial_record,
)

logger = logging.getLogger(__name__)

__all__ = ["JobScheduler", "SchedulerError", "get_delay_seconds"]

SendFn = Callable[[list[ExecutionRecord]], Awaitable[Any]]


class SchedulerError(Exception):
    """Raised when the transport fails to accept jobs."""

    pass


def get_delay_seconds(job: ExecutionRecord) -> int:
    """Seconds the transport should wait before delivering `job`.

    Sleeping and error-retryable records wait their number_of_seconds_to_sleep;
    every other state is due immediately.
    """
    state = job.state
    if isinstance(state, (Sleeping, ErrorRetryable)):
        return state.number_of_seconds_to_sleep
    return 0


class JobScheduler:
    """
    Thin wrapper around an async `send(jobs)` transport.

    Example:
        ```python
        async def send(jobs):
            for job in jobs:
                await queue.put(job.to_json(), delay=get_delay_seconds(job))

        scheduler = JobScheduler(send)
        await scheduler.send_event("user.created", {"id": "123"})
        ```
    """

    def __init__(self, send: SendFn):
        self._send = send

    async def send_event(
        self,
        event_name: str,
        data: Any = None,
        delay_seconds: int = 0,
        trace_id: str | None = None,
        job_id: str | None = None,
    ) -> ExecutionRecord:
        """Create an initial record for an event and send it.

        Returns:
            The record that was sent

        Raises:
            SchedulerError: If the transport raised
        """
        job = create_initial_record(
            event_name,
            data,
            job_id=job_id,
            trace_id=trace_id,
            delay_seconds=delay_seconds,
        )
        await self.send_many([job])
        return job

    async def send_many(self, jobs: Sequence[ExecutionRecord]) -> Any:
        """Send already-built records (typically an ingestion's next_jobs).

        Raises:
            SchedulerError: If the transport raised
        """
        jobs = list(jobs)
        if not jobs:
            return None

        try:
            ack = await self._send(jobs)
        except Exception as e:
            logger.error(f"Failed to send {len(jobs)} job(s): {e}")
            raise SchedulerError(f"Failed to send {len(jobs)} job(s): {e}") from e

        logger.debug(f"Sent {len(jobs)} job(s)")
        return ack
