"""Core data models for job execution.

Defines types for execution records, step and function outcomes,
duration arithmetic and retry behavior.

Design: Dependency-Free Models
These types have no dependencies on core or executor modules to
prevent circular imports and enable clean layering.
"""

from pyjobrouter.models.duration import Duration, parse_iso, to_iso, to_seconds, utc_now, wake_time
from pyjobrouter.models.record import (
    Complete,
    CompleteWithError,
    ErrorRetryable,
    Event,
    ExecutionRecord,
    JobState,
    MaxRetriesExceeded,
    Ready,
    Sleeping,
    create_initial_record,
    job_state_from_dict,
    new_id,
)
from pyjobrouter.models.retry import RetryPolicy
from pyjobrouter.models.status import IngestStatus, JobStatus, StepStatus
from pyjobrouter.models.step_state import FunctionExecutionState, StepState, serialize_error

__all__ = [
    "Duration",
    "to_seconds",
    "wake_time",
    "to_iso",
    "parse_iso",
    "utc_now",
    "Event",
    "ExecutionRecord",
    "JobState",
    "Ready",
    "Sleeping",
    "ErrorRetryable",
    "Complete",
    "CompleteWithError",
    "MaxRetriesExceeded",
    "job_state_from_dict",
    "create_initial_record",
    "new_id",
    "RetryPolicy",
    "StepStatus",
    "JobStatus",
    "IngestStatus",
    "StepState",
    "FunctionExecutionState",
    "serialize_error",
]
