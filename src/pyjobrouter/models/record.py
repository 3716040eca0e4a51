"""
Execution record: the persisted state of one event's processing.

An ExecutionRecord travels between ingestions. Every ingestion works on a
deep copy, assigns a fresh execution_id, mutates the copy and hands it back
together with zero or more follow-up records (forks).

Job states are a closed set of frozen dataclasses. The `status` class
attribute is the wire tag; payload fields only exist on the variants that
carry them, so a Sleeping state can never be missing its wake time.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

from uuid_extensions import uuid7

from pyjobrouter.models.duration import wake_time
from pyjobrouter.models.status import JobStatus
from pyjobrouter.models.step_state import FunctionExecutionState, serialize_error

__all__ = [
    "Event",
    "Ready",
    "Sleeping",
    "ErrorRetryable",
    "Complete",
    "CompleteWithError",
    "MaxRetriesExceeded",
    "JobState",
    "job_state_from_dict",
    "ExecutionRecord",
    "create_initial_record",
    "new_id",
]


def new_id() -> str:
    """Time-ordered identifier used for execution, job and trace ids."""
    return str(uuid7())


@dataclass(frozen=True)
class Event:
    """The triggering event. Never changes across forks."""

    event_name: str
    data: Any = None
    job_id: str = ""
    trace_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventName": self.event_name,
            "data": self.data,
            "jobId": self.job_id,
            "traceId": self.trace_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        return cls(
            event_name=data["eventName"],
            data=data.get("data"),
            job_id=data.get("jobId", ""),
            trace_id=data.get("traceId", ""),
        )


# =============================================================================
# Job state variants
# =============================================================================


@dataclass(frozen=True)
class Ready:
    status: ClassVar[JobStatus] = JobStatus.READY

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value}


@dataclass(frozen=True)
class Sleeping:
    sleeping_until_iso: str
    number_of_seconds_to_sleep: int

    status: ClassVar[JobStatus] = JobStatus.SLEEPING

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "sleepingUntilISO": self.sleeping_until_iso,
            "numberOfSecondsToSleep": self.number_of_seconds_to_sleep,
        }


@dataclass(frozen=True)
class ErrorRetryable:
    sleeping_until_iso: str
    number_of_seconds_to_sleep: int
    error: Any = None

    status: ClassVar[JobStatus] = JobStatus.ERROR_RETRYABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "sleepingUntilISO": self.sleeping_until_iso,
            "numberOfSecondsToSleep": self.number_of_seconds_to_sleep,
            "error": serialize_error(self.error),
        }


@dataclass(frozen=True)
class Complete:
    status: ClassVar[JobStatus] = JobStatus.COMPLETE

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value}


@dataclass(frozen=True)
class CompleteWithError:
    error: Any = None

    status: ClassVar[JobStatus] = JobStatus.COMPLETE_WITH_ERROR

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "error": serialize_error(self.error)}


@dataclass(frozen=True)
class MaxRetriesExceeded:
    error: Any = None

    status: ClassVar[JobStatus] = JobStatus.MAX_RETRIES_EXCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "error": serialize_error(self.error)}


JobState = Ready | Sleeping | ErrorRetryable | Complete | CompleteWithError | MaxRetriesExceeded


def job_state_from_dict(data: dict[str, Any]) -> JobState:
    """Rebuild a job state from its wire form.

    Raises:
        ValueError: If the status tag is unknown
    """
    status = JobStatus(data["status"])
    if status == JobStatus.READY:
        return Ready()
    if status == JobStatus.SLEEPING:
        return Sleeping(data["sleepingUntilISO"], data["numberOfSecondsToSleep"])
    if status == JobStatus.ERROR_RETRYABLE:
        return ErrorRetryable(
            data["sleepingUntilISO"], data["numberOfSecondsToSleep"], data.get("error")
        )
    if status == JobStatus.COMPLETE:
        return Complete()
    if status == JobStatus.COMPLETE_WITH_ERROR:
        return CompleteWithError(data.get("error"))
    return MaxRetriesExceeded(data.get("error"))


# =============================================================================
# Execution record
# =============================================================================


@dataclass
class ExecutionRecord:
    """
    Persisted state of one event's processing across all ingestions.

    Counters are job-level: number_of_previous_attempts grows by one per
    ingestion, number_of_failed_previous_attempts only in rounds where at
    least one function failed.

    include_functions / exclude_functions restrict which registered
    functions take part in an ingestion. Include is applied first.
    """

    execution_id: str
    event: Event
    state: JobState = field(default_factory=Ready)
    number_of_previous_attempts: int = 0
    number_of_failed_previous_attempts: int = 0
    include_functions: list[str] | None = None
    exclude_functions: list[str] | None = None
    function_states: dict[str, FunctionExecutionState] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        """True once no further ingestion may target this record."""
        return self.state.status.is_terminal

    def clone(self) -> ExecutionRecord:
        """Deep copy; the copy shares no mutable sub-tree with the original.

        The copy is built from the wire form, so error payloads come back as
        plain dicts. Exceptions are not copied: many of them cannot be
        rebuilt from their args.
        """
        return ExecutionRecord.from_dict(copy.deepcopy(self.to_dict()))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "executionId": self.execution_id,
            "event": self.event.to_dict(),
            "numberOfPreviousAttempts": self.number_of_previous_attempts,
            "numberOfFailedPreviousAttempts": self.number_of_failed_previous_attempts,
            "state": self.state.to_dict(),
            "functionStates": {
                name: fn_state.to_dict() for name, fn_state in self.function_states.items()
            },
        }
        if self.include_functions is not None:
            data["includeFunctions"] = list(self.include_functions)
        if self.exclude_functions is not None:
            data["excludeFunctions"] = list(self.exclude_functions)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionRecord:
        include = data.get("includeFunctions")
        exclude = data.get("excludeFunctions")
        return cls(
            execution_id=data["executionId"],
            event=Event.from_dict(data["event"]),
            state=job_state_from_dict(data["state"]),
            number_of_previous_attempts=data.get("numberOfPreviousAttempts", 0),
            number_of_failed_previous_attempts=data.get("numberOfFailedPreviousAttempts", 0),
            include_functions=list(include) if include is not None else None,
            exclude_functions=list(exclude) if exclude is not None else None,
            function_states={
                name: FunctionExecutionState.from_dict(fn_state)
                for name, fn_state in (data.get("functionStates") or {}).items()
            },
        )

    def to_json(self) -> str:
        """Serialize to JSON text.

        Values json cannot encode natively (exceptions nested in results,
        datetimes, sets) fall back to their string form, so a failed record
        always serializes.
        """
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, text: str) -> ExecutionRecord:
        return cls.from_dict(json.loads(text))

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"ExecutionRecord(event={self.event.event_name}, "
            f"job_id={self.event.job_id}, state={self.state.status}, "
            f"attempts={self.number_of_previous_attempts}, "
            f"failed={self.number_of_failed_previous_attempts})"
        )


def create_initial_record(
    event_name: str,
    data: Any = None,
    job_id: str | None = None,
    trace_id: str | None = None,
    delay_seconds: int = 0,
) -> ExecutionRecord:
    """
    Build a fresh record for an event.

    Args:
        event_name: Name used to resolve registered functions
        data: Event payload handed to every function
        job_id: Optional job identifier (generated when omitted)
        trace_id: Optional trace identifier (generated when omitted)
        delay_seconds: When positive the record starts Sleeping until now + delay

    Returns:
        ExecutionRecord with zero counters and no function states
    """
    if delay_seconds < 0:
        raise ValueError(f"delay_seconds must be non-negative, got {delay_seconds}")

    state: JobState
    if delay_seconds > 0:
        until, seconds = wake_time((delay_seconds, "seconds"))
        state = Sleeping(sleeping_until_iso=until, number_of_seconds_to_sleep=seconds)
    else:
        state = Ready()

    return ExecutionRecord(
        execution_id=new_id(),
        event=Event(
            event_name=event_name,
            data=data,
            job_id=job_id or new_id(),
            trace_id=trace_id or new_id(),
        ),
        state=state,
    )
