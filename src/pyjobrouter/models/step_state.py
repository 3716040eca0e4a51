"""
StepState and FunctionExecutionState: memoized outcomes of steps and functions.

Design principles:
- One dataclass per shape, tagged by StepStatus
- Payload fields only meaningful for their status (result, err, until_iso)
- Serialization-friendly: to_dict() emits the camelCase wire format
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pyjobrouter.models.status import StepStatus

__all__ = [
    "StepState",
    "FunctionExecutionState",
    "serialize_error",
]


def serialize_error(err: Any) -> Any:
    """Convert an error payload to a plain JSON-compatible value.

    Exceptions become ``{"name": ..., "message": ...}``. Anything else is
    returned unchanged (errors are opaque payloads; user code may raise or
    reject with plain values).
    """
    if isinstance(err, BaseException):
        return {"name": type(err).__name__, "message": str(err)}
    return err


@dataclass
class StepState:
    """
    Outcome of a single step (or of a whole function).

    A StepState tracks:
    - Status (pending, success, error, sleeping, handledByAnotherExecution)
    - Payload (result on success, err on error, until_iso/delay_seconds on sleeping)
    - Attempt counters
    - execution_id of the ingestion that last wrote it

    Design: Value object pattern - a snapshot of one outcome. Transitions
    create new instances through the factory classmethods.
    """

    status: StepStatus = StepStatus.PENDING
    """Current outcome tag"""

    number_of_previous_attempts: int = 0
    """Number of times this step was attempted (sleeps count as attempts)"""

    number_of_failed_previous_attempts: int = 0
    """Number of attempts that raised"""

    execution_id: str = ""
    """Ingestion that wrote this state.

    Compared with the record's execution_id to tell "ran this round"
    from "ran in a prior round".
    """

    result: Any = None
    """Cached return value (SUCCESS only)"""

    err: Any = None
    """Raised error or rejection payload (ERROR only)"""

    until_iso: str | None = None
    """Wake time (SLEEPING only)"""

    delay_seconds: int | None = None
    """Requested suspension length in seconds (SLEEPING only)"""

    def __post_init__(self):
        """Validate invariants after creation."""
        if self.number_of_previous_attempts < 0:
            raise ValueError(
                f"Attempts must be non-negative, got {self.number_of_previous_attempts}"
            )

        if self.number_of_failed_previous_attempts < 0:
            raise ValueError(
                f"Failed attempts must be non-negative, "
                f"got {self.number_of_failed_previous_attempts}"
            )

        if self.number_of_failed_previous_attempts > self.number_of_previous_attempts:
            raise ValueError(
                f"Failed attempts ({self.number_of_failed_previous_attempts}) cannot exceed "
                f"attempts ({self.number_of_previous_attempts})"
            )

        if self.status == StepStatus.SLEEPING and self.until_iso is None:
            raise ValueError("until_iso must be set when status is SLEEPING")

    # ==========================================================================
    # Factories
    # ==========================================================================

    @classmethod
    def pending(cls, execution_id: str) -> StepState:
        """Fresh state for a step reached for the first time."""
        return cls(status=StepStatus.PENDING, execution_id=execution_id)

    def succeeded(self, result: Any, execution_id: str) -> StepState:
        """Successor state after a successful attempt."""
        return StepState(
            status=StepStatus.SUCCESS,
            result=result,
            execution_id=execution_id,
            number_of_previous_attempts=self.number_of_previous_attempts + 1,
            number_of_failed_previous_attempts=self.number_of_failed_previous_attempts,
        )

    def failed(self, err: Any, execution_id: str) -> StepState:
        """Successor state after a failed attempt.

        The error is stored in its plain form (see serialize_error) so the
        state can be deep copied and sent through a queue.
        """
        return StepState(
            status=StepStatus.ERROR,
            err=serialize_error(err),
            execution_id=execution_id,
            number_of_previous_attempts=self.number_of_previous_attempts + 1,
            number_of_failed_previous_attempts=self.number_of_failed_previous_attempts + 1,
        )

    def slept(self, until_iso: str, delay_seconds: int, execution_id: str) -> StepState:
        """Successor state after an attempt that suspended."""
        return StepState(
            status=StepStatus.SLEEPING,
            until_iso=until_iso,
            delay_seconds=delay_seconds,
            execution_id=execution_id,
            number_of_previous_attempts=self.number_of_previous_attempts + 1,
            number_of_failed_previous_attempts=self.number_of_failed_previous_attempts,
        )

    def woke(self, execution_id: str) -> StepState:
        """Successor of a sleeping step reached again: success with result True.

        Counters are carried over unchanged.
        """
        return StepState(
            status=StepStatus.SUCCESS,
            result=True,
            execution_id=execution_id,
            number_of_previous_attempts=self.number_of_previous_attempts,
            number_of_failed_previous_attempts=self.number_of_failed_previous_attempts,
        )

    # ==========================================================================
    # Predicates
    # ==========================================================================

    def is_success(self) -> bool:
        return self.status == StepStatus.SUCCESS

    def is_sleeping(self) -> bool:
        return self.status == StepStatus.SLEEPING

    # ==========================================================================
    # Serialization
    # ==========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Plain dict in the wire format; only the active payload is emitted."""
        data: dict[str, Any] = {"status": self.status.value}
        if self.status == StepStatus.SUCCESS:
            data["result"] = self.result
        elif self.status == StepStatus.ERROR:
            data["err"] = serialize_error(self.err)
        elif self.status == StepStatus.SLEEPING:
            data["untilISO"] = self.until_iso
            data["delaySeconds"] = self.delay_seconds
        data["numberOfPreviousAttempts"] = self.number_of_previous_attempts
        data["numberOfFailedPreviousAttempts"] = self.number_of_failed_previous_attempts
        data["executionId"] = self.execution_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepState:
        return cls(
            status=StepStatus(data["status"]),
            number_of_previous_attempts=data.get("numberOfPreviousAttempts", 0),
            number_of_failed_previous_attempts=data.get("numberOfFailedPreviousAttempts", 0),
            execution_id=data.get("executionId", ""),
            result=data.get("result"),
            err=data.get("err"),
            until_iso=data.get("untilISO"),
            delay_seconds=data.get("delaySeconds"),
        )

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"StepState(status={self.status}, "
            f"attempts={self.number_of_previous_attempts}, "
            f"failed={self.number_of_failed_previous_attempts})"
        )


@dataclass
class FunctionExecutionState:
    """State of one registered function within an execution record.

    `state` holds the function's own outcome; `step_states` holds each
    named step's outcome, keyed by step name (the memoization key).
    """

    function_name: str
    state: StepState
    step_states: dict[str, StepState] = field(default_factory=dict)

    @classmethod
    def initial(cls, function_name: str, execution_id: str) -> FunctionExecutionState:
        """State for a function that has never been invoked."""
        return cls(function_name=function_name, state=StepState.pending(execution_id))

    def to_dict(self) -> dict[str, Any]:
        return {
            "functionName": self.function_name,
            "state": self.state.to_dict(),
            "stepStates": {name: s.to_dict() for name, s in self.step_states.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FunctionExecutionState:
        return cls(
            function_name=data["functionName"],
            state=StepState.from_dict(data["state"]),
            step_states={
                name: StepState.from_dict(s) for name, s in (data.get("stepStates") or {}).items()
            },
        )
