"""
Lifecycle hooks fired around function and step execution.

Design Pattern: Observer Pattern
Hooks observe the ingestion without being able to change it. Each hook is
an optional callable (sync or async) receiving a single argument
dataclass; return values are ignored.

Ordering for one function:
    before_execute_function
        before_execute_step / on_error / on_max_retries_exceeded / after_execute_step
        ...
    after_execute_function

Functions of one ingestion run concurrently, so hook calls of different
functions may interleave.

A hook that raises is logged and otherwise ignored: observers must not
decide the outcome of an ingestion.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pyjobrouter.models.record import Event
    from pyjobrouter.models.step_state import FunctionExecutionState, StepState

logger = logging.getLogger(__name__)

__all__ = [
    "Hooks",
    "FunctionHookArgs",
    "StepHookArgs",
    "ErrorHookArgs",
    "fire_hook",
]

HookFn = Callable[[Any], Any]


@dataclass(frozen=True)
class FunctionHookArgs:
    """Argument of before_execute_function / after_execute_function."""

    function_name: str
    function_state: FunctionExecutionState
    event: Event
    execution_id: str


@dataclass(frozen=True)
class StepHookArgs:
    """Argument of before_execute_step / after_execute_step.

    step_state is None the first time a sleep step is reached.
    """

    function_name: str
    step_name: str
    step_state: StepState | None
    event: Event
    execution_id: str


@dataclass(frozen=True)
class ErrorHookArgs:
    """Argument of on_error / on_max_retries_exceeded.

    step_name and step_state are None for errors raised by the function
    body outside of any step.
    """

    error: Any
    function_name: str
    function_state: FunctionExecutionState
    event: Event
    execution_id: str
    step_name: str | None = None
    step_state: StepState | None = None


@dataclass(frozen=True)
class Hooks:
    """Optional lifecycle callbacks.

    Example:
        ```python
        hooks = Hooks(
            on_error=lambda args: print(f"{args.function_name} failed: {args.error}"),
        )
        router = JobRouter(hooks=hooks)
        ```
    """

    before_execute_function: HookFn | None = None
    after_execute_function: HookFn | None = None
    before_execute_step: HookFn | None = None
    after_execute_step: HookFn | None = None
    on_error: HookFn | None = None
    on_max_retries_exceeded: HookFn | None = None


async def fire_hook(hooks: Hooks | None, name: str, args: Any) -> None:
    """Invoke the hook called `name` if it is set.

    Awaits the hook when it returns an awaitable. Exceptions raised by the
    hook are logged and not propagated.
    """
    if hooks is None:
        return

    hook = getattr(hooks, name)
    if hook is None:
        return

    try:
        result = hook(args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception(f"Hook {name} raised; ignoring")
