"""
Executor module - the ingestion engine and its thin collaborators.

This module contains:
- router: JobRouter, one ingestion per call
- step: Step runtime (memoized run, suspending sleep)
- outcome: Succeeded/Slept/Failed function outcomes
- forks: follow-up job construction and final status
- scheduler: JobScheduler wrapping a send transport
- worker: JobWorker tying router and scheduler together
"""

from pyjobrouter.executor.forks import ForkPlan, build_forks
from pyjobrouter.executor.outcome import (
    Failed,
    FunctionOutcome,
    HandledStepError,
    Slept,
    Succeeded,
    is_failed,
    is_slept,
    is_succeeded,
)
from pyjobrouter.executor.router import (
    HandlerArgs,
    IngestResult,
    InvariantViolationError,
    JobRouter,
    RouterError,
)
from pyjobrouter.executor.scheduler import JobScheduler, SchedulerError, get_delay_seconds
from pyjobrouter.executor.step import Step
from pyjobrouter.executor.worker import JobBatch, JobWorker

__all__ = [
    # Engine
    "JobRouter",
    "HandlerArgs",
    "IngestResult",
    "RouterError",
    "InvariantViolationError",
    # Steps
    "Step",
    "HandledStepError",
    # Outcomes
    "Succeeded",
    "Slept",
    "Failed",
    "FunctionOutcome",
    "is_succeeded",
    "is_slept",
    "is_failed",
    # Forks
    "ForkPlan",
    "build_forks",
    # Dispatch
    "JobScheduler",
    "SchedulerError",
    "get_delay_seconds",
    "JobWorker",
    "JobBatch",
]
