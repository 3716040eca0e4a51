"""
Step runtime: memoized work units and timed suspensions.

A job function is re-executed from the top on every ingestion. Steps make
that safe: each step is keyed by name, and once a step succeeded its
cached result is returned without calling user code again.

Timeline of a sleep step:
    ingestion N:   sleep("wait", (1, "days")) → record sleeping → unwind body
    ingestion N+1: sleep("wait", ...) → sleeping becomes success → continue
    later:         sleep("wait", ...) → already success → continue

A Step is created per function invocation and writes directly into that
function's step_states. Steps of one function run sequentially.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pyjobrouter.core.hooks import ErrorHookArgs, Hooks, StepHookArgs, fire_hook
from pyjobrouter.executor.outcome import HandledStepError, _SleepSignal
from pyjobrouter.models.duration import Duration, wake_time
from pyjobrouter.models.record import Event
from pyjobrouter.models.step_state import FunctionExecutionState, StepState

logger = logging.getLogger(__name__)

__all__ = ["Step"]

T = TypeVar("T")


class Step:
    """
    Per-invocation step runtime handed to job functions as `args.step`.

    Example:
        ```python
        async def onboard(args):
            user = await args.step.run("load user", lambda: load_user(args.data["id"]))
            await args.step.sleep("wait a day", (1, "days"))
            await args.step.run("send email", lambda: send_email(user))
        ```
    """

    def __init__(
        self,
        function_state: FunctionExecutionState,
        event: Event,
        execution_id: str,
        hooks: Hooks | None = None,
        can_retry: bool = True,
    ):
        """
        Args:
            function_state: State of the enclosing function; its step_states
                are read and updated in place
            event: Event being ingested (passed to hooks)
            execution_id: Identifier of the current ingestion
            hooks: Optional lifecycle hooks
            can_retry: Whether the enclosing function still has retry budget;
                when False a step failure also fires on_max_retries_exceeded
        """
        self._function_state = function_state
        self._event = event
        self._execution_id = execution_id
        self._hooks = hooks
        self._can_retry = can_retry

    @property
    def function_name(self) -> str:
        return self._function_state.function_name

    @property
    def step_states(self) -> dict[str, StepState]:
        return self._function_state.step_states

    def _step_args(self, step_name: str, step_state: StepState | None) -> StepHookArgs:
        return StepHookArgs(
            function_name=self.function_name,
            step_name=step_name,
            step_state=step_state,
            event=self._event,
            execution_id=self._execution_id,
        )

    async def run(self, name: str, callback: Callable[[], Awaitable[T] | T]) -> T:
        """
        Run a memoized unit of work.

        Args:
            name: Step name, unique within the function and stable across replays
            callback: Zero-argument callable, sync or async

        Returns:
            The callback's result, or the cached result of an earlier success

        Raises:
            HandledStepError: If the callback raised; the error is already
                recorded in the step state and reported to on_error
        """
        state = self.step_states.get(name)
        if state is None:
            state = StepState.pending(self._execution_id)
            self.step_states[name] = state

        if state.is_success():
            logger.debug(f"Step {self.function_name}/{name}: cached, skipping")
            return state.result

        await fire_hook(self._hooks, "before_execute_step", self._step_args(name, state))

        try:
            result = callback()
            if inspect.isawaitable(result):
                result = await result
        except HandledStepError as e:
            # A nested step already recorded the error and fired on_error
            failed = state.failed(e.error, self._execution_id)
            self.step_states[name] = failed
            logger.debug(
                f"Step {self.function_name}/{name} failed in nested step {e.step_name!r}"
            )
            await fire_hook(self._hooks, "after_execute_step", self._step_args(name, failed))
            raise
        except Exception as e:
            failed = state.failed(e, self._execution_id)
            self.step_states[name] = failed
            logger.debug(
                f"Step {self.function_name}/{name} failed "
                f"(attempt {failed.number_of_previous_attempts}): {e}"
            )

            error_args = ErrorHookArgs(
                error=e,
                function_name=self.function_name,
                function_state=self._function_state,
                event=self._event,
                execution_id=self._execution_id,
                step_name=name,
                step_state=failed,
            )
            await fire_hook(self._hooks, "on_error", error_args)
            if not self._can_retry:
                await fire_hook(self._hooks, "on_max_retries_exceeded", error_args)
            await fire_hook(self._hooks, "after_execute_step", self._step_args(name, failed))

            raise HandledStepError(name, e) from e

        succeeded = state.succeeded(result, self._execution_id)
        self.step_states[name] = succeeded
        logger.debug(f"Step {self.function_name}/{name} succeeded")
        await fire_hook(self._hooks, "after_execute_step", self._step_args(name, succeeded))
        return result

    async def sleep(self, name: str, duration: Duration) -> bool:
        """
        Suspend the function until `duration` has elapsed.

        The first time this step is reached the function body is unwound
        and the ingestion emits a follow-up job scheduled for the wake
        time. When that follow-up is ingested the body replays up to here
        and continues.

        Args:
            name: Step name, unique within the function and stable across replays
            duration: `(amount, unit)` or timedelta, see models.duration

        Returns:
            True once the sleep has elapsed

        Raises:
            ValueError: If the duration is invalid
        """
        state = self.step_states.get(name)

        if state is None:
            until_iso, delay_seconds = wake_time(duration)
            await fire_hook(self._hooks, "before_execute_step", self._step_args(name, None))

            sleeping = StepState.pending(self._execution_id).slept(
                until_iso, delay_seconds, self._execution_id
            )
            self.step_states[name] = sleeping
            logger.debug(f"Step {self.function_name}/{name} sleeping until {until_iso}")
            await fire_hook(self._hooks, "after_execute_step", self._step_args(name, sleeping))

            raise _SleepSignal(until_iso, delay_seconds)

        if state.is_sleeping():
            await fire_hook(self._hooks, "before_execute_step", self._step_args(name, state))
            woke = state.woke(self._execution_id)
            self.step_states[name] = woke
            logger.debug(f"Step {self.function_name}/{name} woke up")
            await fire_hook(self._hooks, "after_execute_step", self._step_args(name, woke))

        return True
