"""
Function outcomes and the internal control signals behind them.

Design Pattern: State Machine using Union types

A function body can end in three ways during one ingestion:

- Succeeded: the body returned
- Slept: the body reached a sleep step and was unwound
- Failed: the body (or one of its steps) raised

Suspension is raised as a signal inside the body, because a function is
plain user code and the only way to stop it mid-way is to unwind the
stack. At the engine seam the signal is caught and turned into an explicit
Slept value, so everything downstream works on typed outcomes.

Example:
    ```python
    match outcome:
        case Succeeded(result):
            ...
        case Slept(until_iso, delay_seconds):
            ...
        case Failed(error):
            ...
    ```
"""

from dataclasses import dataclass
from typing import Any

__all__ = [
    "HandledStepError",
    "Succeeded",
    "Slept",
    "Failed",
    "FunctionOutcome",
    "is_succeeded",
    "is_slept",
    "is_failed",
]


# =============================================================================
# Flow Control Signals (Not Errors)
# =============================================================================


class _FlowControl(BaseException):
    """
    Base class for control signals.

    Like StopIteration and GeneratorExit these are control flow, not
    errors. They inherit from BaseException so that a user's
    `except Exception:` around a sleep step does not swallow them.
    """

    pass


class _SleepSignal(_FlowControl):  # noqa: N818
    """
    Signal that the function body must stop at a sleep step.

    Raised by Step.sleep() the first time a sleep step is reached and
    caught by the engine's per-function wrapper, which records the
    function as sleeping. Never visible to callers of ingest().
    """

    def __init__(self, until_iso: str, delay_seconds: int):
        super().__init__(until_iso, delay_seconds)
        self.until_iso = until_iso
        self.delay_seconds = delay_seconds


class HandledStepError(Exception):
    """
    A step failure that was already recorded and reported to on_error.

    Step.run() raises this instead of the original error so the engine
    can tell it apart from a raw error raised by the function body and
    does not notify hooks twice. The original error is kept in `error`
    and chained as `__cause__`.
    """

    def __init__(self, step_name: str, error: BaseException):
        super().__init__(f"Step {step_name!r} failed: {error}")
        self.step_name = step_name
        self.error = error


# =============================================================================
# Function outcomes
# =============================================================================


@dataclass(frozen=True)
class Succeeded:
    """The function body returned `result`."""

    result: Any = None

    def __str__(self) -> str:
        return f"Succeeded(result={self.result!r})"


@dataclass(frozen=True)
class Slept:
    """The function body suspended until `until_iso`."""

    until_iso: str
    delay_seconds: int

    def __str__(self) -> str:
        return f"Slept(until={self.until_iso}, seconds={self.delay_seconds})"


@dataclass(frozen=True)
class Failed:
    """
    The function body raised.

    Attributes:
        error: The original error (unwrapped from HandledStepError)
        handled: True when the error came from a step and hooks were
            already notified
    """

    error: Any
    handled: bool = False

    def __str__(self) -> str:
        return f"Failed(error={type(self.error).__name__}: {self.error})"


FunctionOutcome = Succeeded | Slept | Failed


def is_succeeded(outcome: FunctionOutcome) -> bool:
    return isinstance(outcome, Succeeded)


def is_slept(outcome: FunctionOutcome) -> bool:
    return isinstance(outcome, Slept)


def is_failed(outcome: FunctionOutcome) -> bool:
    return isinstance(outcome, Failed)
