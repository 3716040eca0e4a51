"""
pyjobrouter: durable job routing for Python

An event is routed to the functions registered for it. Each function is
made of named steps. An ingestion runs whatever is not complete yet and
returns the updated execution record plus follow-up jobs for work that
failed or is sleeping. The caller persists the record and dispatches the
follow-ups; ingesting a follow-up resumes exactly where work stopped.

Design Pattern: Façade Pattern
This module re-exports the public surface of the models, core and
executor packages.

Example:
    ```python
    import asyncio
    from pyjobrouter import JobRouter

    router = JobRouter()

    @router.function("user.created", "onboarding")
    async def onboarding(args):
        user = await args.step.run("load user", lambda: load_user(args.data["id"]))
        await args.step.sleep("wait a day", (1, "days"))
        await args.step.run("send tips", lambda: send_tips(user))

    async def main():
        outcome = await router.ingest_initial("user.created", {"id": "123"})
        print(outcome.status, [job.state for job in outcome.next_jobs])

    asyncio.run(main())
    ```
"""

from pyjobrouter.core import (
    ErrorHookArgs,
    FunctionHookArgs,
    HandlerRegistry,
    Hooks,
    JobFunction,
    RegistrationError,
    StepHookArgs,
)
from pyjobrouter.executor import (
    Failed,
    FunctionOutcome,
    HandledStepError,
    HandlerArgs,
    IngestResult,
    InvariantViolationError,
    JobBatch,
    JobRouter,
    JobScheduler,
    JobWorker,
    RouterError,
    SchedulerError,
    Slept,
    Step,
    Succeeded,
    build_forks,
    get_delay_seconds,
)
from pyjobrouter.models import (
    Complete,
    CompleteWithError,
    ErrorRetryable,
    Event,
    ExecutionRecord,
    FunctionExecutionState,
    IngestStatus,
    JobState,
    JobStatus,
    MaxRetriesExceeded,
    Ready,
    RetryPolicy,
    Sleeping,
    StepState,
    StepStatus,
    create_initial_record,
    to_seconds,
    wake_time,
)

__version__ = "0.1.0"

__all__ = [
    # Engine
    "JobRouter",
    "HandlerArgs",
    "IngestResult",
    "RouterError",
    "InvariantViolationError",
    "Step",
    "HandledStepError",
    "Succeeded",
    "Slept",
    "Failed",
    "FunctionOutcome",
    "build_forks",
    # Registration and hooks
    "HandlerRegistry",
    "JobFunction",
    "RegistrationError",
    "Hooks",
    "FunctionHookArgs",
    "StepHookArgs",
    "ErrorHookArgs",
    # Dispatch
    "JobScheduler",
    "SchedulerError",
    "get_delay_seconds",
    "JobWorker",
    "JobBatch",
    # Models
    "Event",
    "ExecutionRecord",
    "create_initial_record",
    "JobState",
    "Ready",
    "Sleeping",
    "ErrorRetryable",
    "Complete",
    "CompleteWithError",
    "MaxRetriesExceeded",
    "StepState",
    "FunctionExecutionState",
    "StepStatus",
    "JobStatus",
    "IngestStatus",
    "RetryPolicy",
    "to_seconds",
    "wake_time",
]
