"""
Fork & retry scheduling: turn function outcomes into follow-up jobs.

After all functions of an ingestion resolved:

- Succeeded functions produce nothing
- Each Slept function produces its own fork, restricted to that function
  and scheduled for its wake time, so independent sleepers keep
  independent schedules
- All Failed functions share one retry fork, delayed by a random jitter
  and excluding every function that already forked via sleep

Overall classification:

    no forks                       → success,            Complete
    forks, failed rounds > budget  → maxRetriesExceeded, MaxRetriesExceeded(error)
    forks                          → needsRetry,         CompleteWithError(error)

The job-level budget counts ROUNDS with at least one failure. It is
independent from the per-function check that fires on_max_retries_exceeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from pyjobrouter.executor.outcome import (
    Failed,
    FunctionOutcome,
    is_failed,
    is_slept,
    is_succeeded,
)
from pyjobrouter.models.duration import wake_time
from pyjobrouter.models.record import (
    Complete,
    CompleteWithError,
    ErrorRetryable,
    ExecutionRecord,
    JobState,
    MaxRetriesExceeded,
    Sleeping,
)
from pyjobrouter.models.retry import RetryPolicy
from pyjobrouter.models.status import IngestStatus
from pyjobrouter.models.step_state import serialize_error

logger = logging.getLogger(__name__)

__all__ = ["ForkPlan", "build_forks"]


@dataclass
class ForkPlan:
    """Follow-up jobs plus the final state and status of one ingestion."""

    next_jobs: list[ExecutionRecord] = field(default_factory=list)
    state: JobState = field(default_factory=Complete)
    status: IngestStatus = IngestStatus.SUCCESS


def build_forks(
    record: ExecutionRecord,
    outcomes: dict[str, FunctionOutcome],
    policy: RetryPolicy,
    now: datetime | None = None,
) -> ForkPlan:
    """
    Build follow-up jobs for the functions handled in this round.

    Args:
        record: The post-round record (counters already incremented);
            every fork is an independent deep copy of it
        outcomes: Outcome per function invoked this round, in invocation order
        policy: Retry budget and jitter window
        now: Reference time for the retry wake time (defaults to now)

    Returns:
        ForkPlan with next_jobs, the state to write into the result and
        the ingest status
    """
    next_jobs: list[ExecutionRecord] = []
    sleep_forked: list[str] = []
    failures: list[Failed] = []

    for function_name, outcome in outcomes.items():
        if is_succeeded(outcome):
            continue
        if is_slept(outcome):
            fork = record.clone()
            fork.include_functions = [function_name]
            fork.state = Sleeping(
                sleeping_until_iso=outcome.until_iso,
                number_of_seconds_to_sleep=outcome.delay_seconds,
            )
            next_jobs.append(fork)
            sleep_forked.append(function_name)
        elif is_failed(outcome):
            failures.append(outcome)

    # job states carry the plain form; the live exception stays on the outcome
    error = serialize_error(failures[0].error) if failures else None

    if failures:
        exclude = list(record.exclude_functions or [])
        for function_name in sleep_forked:
            if function_name not in exclude:
                exclude.append(function_name)

        until_iso, delay_seconds = wake_time(
            (policy.retry_delay_seconds(), "seconds"), now=now
        )
        fork = record.clone()
        fork.exclude_functions = exclude
        fork.state = ErrorRetryable(
            sleeping_until_iso=until_iso,
            number_of_seconds_to_sleep=delay_seconds,
            error=error,
        )
        next_jobs.append(fork)

    if not next_jobs:
        return ForkPlan(next_jobs=[], state=Complete(), status=IngestStatus.SUCCESS)

    if policy.is_exhausted(record.number_of_failed_previous_attempts):
        logger.warning(
            f"Job {record.event.job_id} ({record.event.event_name}) exceeded "
            f"{policy.max_retries} retries after "
            f"{record.number_of_failed_previous_attempts} failed rounds"
        )
        return ForkPlan(
            next_jobs=next_jobs,
            state=MaxRetriesExceeded(error=error),
            status=IngestStatus.MAX_RETRIES_EXCEEDED,
        )

    return ForkPlan(
        next_jobs=next_jobs,
        state=CompleteWithError(error=error),
        status=IngestStatus.NEEDS_RETRY,
    )
