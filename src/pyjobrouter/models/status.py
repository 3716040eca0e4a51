"""Status enumerations for job execution tracking.

Defines lifecycle states for execution records, for function and step
outcomes, and for the result of a single ingestion. Enum values are the
wire strings used by external schedulers.
"""

from enum import Enum


class StepStatus(Enum):
    """Status of a single step or function outcome.

    Lifecycle:
        PENDING → SUCCESS
        PENDING → ERROR → SUCCESS
        SLEEPING → SUCCESS (wake on next encounter)

    Design: Shared Shape
        Function-level outcomes reuse this enum. A function is SUCCESS once
        its body returned, ERROR if it raised, SLEEPING if it suspended.
    """

    PENDING = "pending"
    """Step has been reached but has not produced an outcome yet."""

    SUCCESS = "success"
    """Step completed; its result is cached and never recomputed."""

    ERROR = "error"
    """Step raised; it will run again on the next ingestion."""

    SLEEPING = "sleeping"
    """Step is a timed suspension waiting for its wake time."""

    HANDLED_BY_ANOTHER_EXECUTION = "handledByAnotherExecution"
    """Step is owned by a different ingestion of the same job."""

    def __str__(self) -> str:
        return self.value


class JobStatus(Enum):
    """Status tag of an execution record.

    Lifecycle:
        READY/SLEEPING/ERROR_RETRYABLE → COMPLETE/COMPLETE_WITH_ERROR/MAX_RETRIES_EXCEEDED

    Records in a terminal status must never be ingested again.
    """

    READY = "ready"
    """Record should be ingested now."""

    SLEEPING = "sleeping"
    """Record is waiting until a wake time before ingestion."""

    ERROR_RETRYABLE = "error-retryable"
    """Record is a retry of failed functions, delayed by jitter."""

    COMPLETE = "complete"
    """Ingestion finished with nothing left to do."""

    COMPLETE_WITH_ERROR = "complete-with-error"
    """Ingestion finished; follow-up jobs carry the remaining work."""

    MAX_RETRIES_EXCEEDED = "maxRetriesExceeded"
    """Job-level failed rounds exceeded the retry budget."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more ingestion allowed)."""
        return self in (
            JobStatus.COMPLETE,
            JobStatus.COMPLETE_WITH_ERROR,
            JobStatus.MAX_RETRIES_EXCEEDED,
        )

    def __str__(self) -> str:
        return self.value


class IngestStatus(Enum):
    """Overall classification of one ingestion."""

    SUCCESS = "success"
    """No follow-up jobs were produced."""

    NEEDS_RETRY = "needsRetry"
    """Follow-up jobs were produced and should be dispatched."""

    MAX_RETRIES_EXCEEDED = "maxRetriesExceeded"
    """Follow-up jobs exist but the retry budget is spent."""

    def __str__(self) -> str:
        return self.value
