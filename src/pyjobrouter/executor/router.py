"""
JobRouter: the ingestion engine.

One ingestion is a pure state transition over an ExecutionRecord:

    1. Reject terminal records (InvariantViolationError)
    2. Deep copy the record and assign a fresh execution_id
    3. Resolve the functions registered for the event, apply
       include_functions then exclude_functions
    4. Resolve the context once (caller value or context factory)
    5. Invoke every eligible, not-yet-successful function concurrently
    6. Merge the resulting function states, bump the job counters
    7. Build forks and the final status (see executor.forks)

Functions are replayed from the top on every ingestion. Determinism comes
from step memoization (see executor.step), not from saved continuations.

The router holds no mutable state across ingestions besides its registry,
which is expected to be complete before the first ingest() call. Callers
must make sure a record is not ingested twice concurrently.

Example:
    ```python
    router = JobRouter(max_retries=3)

    @router.function("user.created", "send welcome")
    async def send_welcome(args):
        await args.step.run("send", lambda: mailer.send(args.data["email"]))

    outcome = await router.ingest_initial("user.created", {"email": "a@b.c"})
    for job in outcome.next_jobs:
        ...
    ```
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pyjobrouter.core.hooks import ErrorHookArgs, FunctionHookArgs, Hooks, fire_hook
from pyjobrouter.core.registry import HandlerRegistry, JobFunction
from pyjobrouter.executor.forks import build_forks
from pyjobrouter.executor.outcome import (
    Failed,
    FunctionOutcome,
    HandledStepError,
    Slept,
    Succeeded,
    _SleepSignal,
    is_failed,
)
from pyjobrouter.executor.step import Step
from pyjobrouter.models.record import ExecutionRecord, create_initial_record, new_id
from pyjobrouter.models.retry import RetryPolicy
from pyjobrouter.models.status import IngestStatus
from pyjobrouter.models.step_state import FunctionExecutionState

logger = logging.getLogger(__name__)

__all__ = [
    "JobRouter",
    "HandlerArgs",
    "IngestResult",
    "RouterError",
    "InvariantViolationError",
]

ContextFactory = Callable[[], Awaitable[Any] | Any]


class RouterError(Exception):
    """Base class for ingestion engine errors."""

    pass


class InvariantViolationError(RouterError):
    """Raised when ingest() is called with a record in a terminal state.

    Not retryable: the record must not be ingested again.
    """

    pass


@dataclass(frozen=True)
class HandlerArgs:
    """Argument passed to every job function.

    The attempt counters are the function's own, as they were before this
    invocation.
    """

    event_name: str
    data: Any
    job_id: str
    trace_id: str
    ctx: Any
    step: Step
    number_of_previous_attempts: int = 0
    number_of_failed_previous_attempts: int = 0


@dataclass
class IngestResult:
    """Outcome of one ingestion.

    Attributes:
        input: The record passed to ingest(), untouched
        result: The updated record (new execution_id, final state)
        next_jobs: Follow-up records to dispatch when status is needsRetry
        status: success, needsRetry or maxRetriesExceeded
    """

    input: ExecutionRecord
    result: ExecutionRecord
    next_jobs: list[ExecutionRecord]
    status: IngestStatus

    @property
    def needs_retry(self) -> bool:
        return self.status == IngestStatus.NEEDS_RETRY


class JobRouter:
    """
    Routes events to their job functions and computes ingestions.

    Args:
        get_ctx: Optional zero-argument context factory (sync or async),
            called once per ingestion when no ctx is passed to ingest()
        max_retries: Overrides the retry budget of the policy
        hooks: Optional lifecycle hooks
        retry_policy: Retry budget and jitter window (defaults to
            RetryPolicy.STANDARD)
        registry: Handler registry to use (a new one by default)
    """

    def __init__(
        self,
        get_ctx: ContextFactory | None = None,
        max_retries: int | None = None,
        hooks: Hooks | None = None,
        retry_policy: RetryPolicy | None = None,
        registry: HandlerRegistry | None = None,
    ):
        policy = retry_policy if retry_policy is not None else RetryPolicy.STANDARD
        if max_retries is not None:
            policy = dataclasses.replace(policy, max_retries=max_retries)

        self._get_ctx = get_ctx
        self._hooks = hooks
        self._policy = policy
        self._registry = registry if registry is not None else HandlerRegistry()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def hooks(self) -> Hooks | None:
        return self._hooks

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    # =========================================================================
    # Builders (configured copies sharing the same registry)
    # =========================================================================

    def _copy(self, **changes: Any) -> JobRouter:
        params: dict[str, Any] = {
            "get_ctx": self._get_ctx,
            "hooks": self._hooks,
            "retry_policy": self._policy,
            "registry": self._registry,
        }
        params.update(changes)
        return JobRouter(**params)

    def with_max_retries(self, max_retries: int) -> JobRouter:
        return self._copy(retry_policy=dataclasses.replace(self._policy, max_retries=max_retries))

    def with_retry_policy(self, policy: RetryPolicy) -> JobRouter:
        return self._copy(retry_policy=policy)

    def with_hooks(self, hooks: Hooks | None) -> JobRouter:
        return self._copy(hooks=hooks)

    def with_context_factory(self, get_ctx: ContextFactory | None) -> JobRouter:
        return self._copy(get_ctx=get_ctx)

    # =========================================================================
    # Registration
    # =========================================================================

    @staticmethod
    def create_handler(function_name: str, handler: Callable[[HandlerArgs], Any]) -> JobFunction:
        """Pair a function name with its handler."""
        return JobFunction(function_name=function_name, handler=handler)

    def on(self, event_name: str, functions: Iterable[JobFunction]) -> JobRouter:
        """Register the functions for an event, replacing earlier ones.

        Returns the router so registrations can be chained.
        """
        self._registry.register(event_name, functions)
        return self

    def function(self, event_name: str, function_name: str | None = None):
        """Decorator registering a handler for an event.

        Unlike on(), the decorator adds to the functions already registered
        for the event. The function name defaults to the handler's __name__.

        Example:
            ```python
            @router.function("order.placed")
            async def charge(args):
                ...
            ```
        """

        def decorator(handler: Callable[[HandlerArgs], Any]):
            name = function_name or handler.__name__
            existing = self._registry.get(event_name)
            self._registry.register(event_name, [*existing, self.create_handler(name, handler)])
            return handler

        return decorator

    # =========================================================================
    # Ingestion
    # =========================================================================

    def create_job_for_event(
        self,
        event_name: str,
        data: Any = None,
        job_id: str | None = None,
        trace_id: str | None = None,
    ) -> ExecutionRecord:
        """Build a fresh Ready record for an event."""
        return create_initial_record(event_name, data, job_id=job_id, trace_id=trace_id)

    async def ingest_initial(
        self,
        event_name: str,
        data: Any = None,
        job_id: str | None = None,
        trace_id: str | None = None,
        ctx: Any = None,
    ) -> IngestResult:
        """Create a fresh record for an event and ingest it."""
        return await self.ingest(
            self.create_job_for_event(event_name, data, job_id=job_id, trace_id=trace_id),
            ctx=ctx,
        )

    async def ingest(self, record: ExecutionRecord, ctx: Any = None) -> IngestResult:
        """
        Compute one ingestion of `record`.

        Args:
            record: Record to ingest; never mutated
            ctx: Context handed to every function (the context factory is
                used when None)

        Returns:
            IngestResult with the updated record, follow-up jobs and status

        Raises:
            InvariantViolationError: If the record is in a terminal state
        """
        if record.is_terminal:
            raise InvariantViolationError(
                f"Cannot ingest job {record.event.job_id}: state is {record.state.status}"
            )

        state = record.clone()
        state.execution_id = new_id()

        functions = self._eligible_functions(state)
        ctx = await self._resolve_ctx(ctx)

        to_invoke: list[tuple[JobFunction, FunctionExecutionState]] = []
        for fn in functions:
            fn_state = state.function_states.get(fn.function_name)
            if fn_state is None:
                fn_state = FunctionExecutionState.initial(fn.function_name, state.execution_id)
            if fn_state.state.is_success():
                continue
            to_invoke.append((fn, fn_state))

        logger.debug(
            f"Ingesting job {state.event.job_id} ({state.event.event_name}) "
            f"execution={state.execution_id}: invoking {len(to_invoke)} of "
            f"{len(functions)} function(s)"
        )

        results = await asyncio.gather(
            *(self._invoke(fn, fn_state, state, ctx) for fn, fn_state in to_invoke)
        )

        outcomes: dict[str, FunctionOutcome] = {}
        for new_state, outcome in results:
            state.function_states[new_state.function_name] = new_state
            outcomes[new_state.function_name] = outcome

        some_function_did_fail = any(is_failed(o) for o in outcomes.values())
        state.number_of_previous_attempts += 1
        if some_function_did_fail:
            state.number_of_failed_previous_attempts += 1

        plan = build_forks(state, outcomes, self._policy)
        state.state = plan.state

        logger.info(
            f"Ingested job {state.event.job_id} ({state.event.event_name}): "
            f"status={plan.status}, next_jobs={len(plan.next_jobs)}"
        )

        return IngestResult(
            input=record,
            result=state,
            next_jobs=plan.next_jobs,
            status=plan.status,
        )

    def _eligible_functions(self, state: ExecutionRecord) -> list[JobFunction]:
        functions = self._registry.get(state.event.event_name)

        if state.include_functions:
            include = set(state.include_functions)
            functions = [fn for fn in functions if fn.function_name in include]

        if state.exclude_functions:
            exclude = set(state.exclude_functions)
            functions = [fn for fn in functions if fn.function_name not in exclude]

        return functions

    async def _resolve_ctx(self, ctx: Any) -> Any:
        if ctx is not None or self._get_ctx is None:
            return ctx
        value = self._get_ctx()
        if inspect.isawaitable(value):
            value = await value
        return value

    async def _invoke(
        self,
        fn: JobFunction,
        fn_state: FunctionExecutionState,
        record: ExecutionRecord,
        ctx: Any,
    ) -> tuple[FunctionExecutionState, FunctionOutcome]:
        """Run one function body and classify how it ended.

        Always fires after_execute_function exactly once.
        """
        execution_id = record.execution_id
        prior = fn_state.state
        can_retry = self._policy.can_retry(prior.number_of_previous_attempts)

        await fire_hook(
            self._hooks,
            "before_execute_function",
            FunctionHookArgs(fn.function_name, fn_state, record.event, execution_id),
        )

        step = Step(fn_state, record.event, execution_id, hooks=self._hooks, can_retry=can_retry)
        args = HandlerArgs(
            event_name=record.event.event_name,
            data=record.event.data,
            job_id=record.event.job_id,
            trace_id=record.event.trace_id,
            ctx=ctx,
            step=step,
            number_of_previous_attempts=prior.number_of_previous_attempts,
            number_of_failed_previous_attempts=prior.number_of_failed_previous_attempts,
        )

        outcome: FunctionOutcome
        try:
            result = fn.handler(args)
            if inspect.isawaitable(result):
                result = await result
        except _SleepSignal as signal:
            fn_state.state = prior.slept(signal.until_iso, signal.delay_seconds, execution_id)
            outcome = Slept(until_iso=signal.until_iso, delay_seconds=signal.delay_seconds)
            logger.debug(f"Function {fn.function_name} sleeping until {signal.until_iso}")
        except HandledStepError as e:
            fn_state.state = prior.failed(e.error, execution_id)
            outcome = Failed(error=e.error, handled=True)
            logger.debug(f"Function {fn.function_name} failed in step {e.step_name!r}")
        except Exception as e:
            fn_state.state = prior.failed(e, execution_id)
            outcome = Failed(error=e)
            logger.debug(f"Function {fn.function_name} failed: {e}")

            error_args = ErrorHookArgs(
                error=e,
                function_name=fn.function_name,
                function_state=fn_state,
                event=record.event,
                execution_id=execution_id,
            )
            await fire_hook(self._hooks, "on_error", error_args)
            if not can_retry:
                await fire_hook(self._hooks, "on_max_retries_exceeded", error_args)
        else:
            fn_state.state = prior.succeeded(result, execution_id)
            outcome = Succeeded(result=result)
            logger.debug(f"Function {fn.function_name} succeeded")

        await fire_hook(
            self._hooks,
            "after_execute_function",
            FunctionHookArgs(fn.function_name, fn_state, record.event, execution_id),
        )
        return fn_state, outcome
