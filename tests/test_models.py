"""Tests for execution record models, durations and retry policy."""

import json
from datetime import UTC, datetime, timedelta

import pytest

from pyjobrouter.models import (
    Complete,
    CompleteWithError,
    ErrorRetryable,
    Event,
    ExecutionRecord,
    FunctionExecutionState,
    IngestStatus,
    JobStatus,
    MaxRetriesExceeded,
    Ready,
    RetryPolicy,
    Sleeping,
    StepState,
    StepStatus,
    create_initial_record,
    job_state_from_dict,
    parse_iso,
    serialize_error,
    to_iso,
    to_seconds,
    wake_time,
)

# =============================================================================
# Status enums
# =============================================================================


def test_status_wire_values():
    assert [s.value for s in JobStatus] == [
        "ready",
        "sleeping",
        "error-retryable",
        "complete",
        "complete-with-error",
        "maxRetriesExceeded",
    ]
    assert [s.value for s in StepStatus] == [
        "pending",
        "success",
        "error",
        "sleeping",
        "handledByAnotherExecution",
    ]
    assert [s.value for s in IngestStatus] == ["success", "needsRetry", "maxRetriesExceeded"]


def test_status_str_is_value():
    assert str(JobStatus.ERROR_RETRYABLE) == "error-retryable"
    assert str(IngestStatus.NEEDS_RETRY) == "needsRetry"


def test_terminal_job_statuses():
    terminal = {s for s in JobStatus if s.is_terminal}
    assert terminal == {
        JobStatus.COMPLETE,
        JobStatus.COMPLETE_WITH_ERROR,
        JobStatus.MAX_RETRIES_EXCEEDED,
    }


# =============================================================================
# StepState
# =============================================================================


def test_step_state_rejects_more_failures_than_attempts():
    with pytest.raises(ValueError, match="cannot exceed"):
        StepState(number_of_previous_attempts=1, number_of_failed_previous_attempts=2)


def test_step_state_rejects_negative_counters():
    with pytest.raises(ValueError):
        StepState(number_of_previous_attempts=-1)


def test_sleeping_step_state_requires_wake_time():
    with pytest.raises(ValueError, match="until_iso"):
        StepState(status=StepStatus.SLEEPING, number_of_previous_attempts=1)


def test_step_state_transitions_update_counters():
    pending = StepState.pending("exec-1")

    failed = pending.failed(ValueError("boom"), "exec-1")
    assert failed.status == StepStatus.ERROR
    assert failed.err == {"name": "ValueError", "message": "boom"}
    assert (failed.number_of_previous_attempts, failed.number_of_failed_previous_attempts) == (1, 1)

    succeeded = failed.succeeded(42, "exec-2")
    assert succeeded.result == 42
    assert succeeded.execution_id == "exec-2"
    assert succeeded.number_of_previous_attempts == 2
    assert succeeded.number_of_failed_previous_attempts == 1


def test_sleeping_step_wakes_with_counters_carried():
    sleeping = StepState.pending("exec-1").slept("2030-01-01T00:00:00.000Z", 60, "exec-1")
    assert sleeping.number_of_previous_attempts == 1

    woke = sleeping.woke("exec-2")
    assert woke.status == StepStatus.SUCCESS
    assert woke.result is True
    assert woke.number_of_previous_attempts == 1
    assert woke.number_of_failed_previous_attempts == 0


def test_step_state_to_dict_emits_only_active_payload():
    data = StepState.pending("e").succeeded({"id": 1}, "e").to_dict()
    assert data == {
        "status": "success",
        "result": {"id": 1},
        "numberOfPreviousAttempts": 1,
        "numberOfFailedPreviousAttempts": 0,
        "executionId": "e",
    }

    sleeping = StepState.pending("e").slept("2030-01-01T00:00:00.000Z", 5, "e").to_dict()
    assert sleeping["untilISO"] == "2030-01-01T00:00:00.000Z"
    assert sleeping["delaySeconds"] == 5
    assert "result" not in sleeping


def test_serialize_error():
    assert serialize_error(KeyError("missing")) == {"name": "KeyError", "message": "'missing'"}
    assert serialize_error("plain rejection") == "plain rejection"
    assert serialize_error(None) is None


# =============================================================================
# Durations
# =============================================================================


@pytest.mark.parametrize(
    "duration,expected",
    [
        ((30, "seconds"), 30),
        ((1, "second"), 1),
        ((90, "minutes"), 5400),
        ((2, "hours"), 7200),
        ([1, "days"], 86400),
        ((1, "day"), 86400),
        ((0.5, "minutes"), 30),
        (timedelta(hours=1), 3600),
    ],
)
def test_to_seconds(duration, expected):
    assert to_seconds(duration) == expected


def test_to_seconds_rejects_unknown_unit():
    with pytest.raises(ValueError, match="Unknown duration unit"):
        to_seconds((1, "fortnights"))


def test_to_seconds_rejects_negative():
    with pytest.raises(ValueError, match="non-negative"):
        to_seconds((-1, "days"))


def test_to_seconds_rejects_malformed():
    with pytest.raises(ValueError):
        to_seconds((1, "days", "extra"))


def test_wake_time_is_utc_iso_with_milliseconds():
    now = datetime(2024, 3, 1, 12, 0, 0, 123456, tzinfo=UTC)
    until_iso, seconds = wake_time((1, "days"), now=now)

    assert seconds == 86400
    assert until_iso == "2024-03-02T12:00:00.123Z"
    assert parse_iso(until_iso) == datetime(2024, 3, 2, 12, 0, 0, 123000, tzinfo=UTC)


def test_to_iso_converts_to_utc():
    from datetime import timezone

    moment = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_iso(moment) == "2024-01-01T00:00:00.000Z"


# =============================================================================
# Retry policy
# =============================================================================


def test_retry_policy_defaults():
    policy = RetryPolicy()
    assert policy.max_retries == 3
    assert (policy.jitter_min_seconds, policy.jitter_max_seconds) == (5, 30)
    assert RetryPolicy.STANDARD == policy
    assert RetryPolicy.NONE.max_retries == 0


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(jitter_min_seconds=10, jitter_max_seconds=5)


def test_retry_policy_budget_checks():
    policy = RetryPolicy.with_max_retries(1)
    assert policy.can_retry(0)
    assert not policy.can_retry(1)
    assert not policy.is_exhausted(1)
    assert policy.is_exhausted(2)


def test_retry_delay_within_jitter_window():
    policy = RetryPolicy()
    delays = {policy.retry_delay_seconds() for _ in range(200)}
    assert all(5 <= d <= 30 for d in delays)


def test_retry_policy_from_env(monkeypatch):
    monkeypatch.setenv("PYJOBROUTER_MAX_RETRIES", "7")
    monkeypatch.setenv("PYJOBROUTER_JITTER_MIN_SECONDS", "1")
    monkeypatch.setenv("PYJOBROUTER_JITTER_MAX_SECONDS", "2")

    assert RetryPolicy.from_env() == RetryPolicy(
        max_retries=7, jitter_min_seconds=1, jitter_max_seconds=2
    )


def test_retry_policy_from_env_defaults_and_errors(monkeypatch):
    monkeypatch.delenv("PYJOBROUTER_MAX_RETRIES", raising=False)
    monkeypatch.delenv("PYJOBROUTER_JITTER_MIN_SECONDS", raising=False)
    monkeypatch.delenv("PYJOBROUTER_JITTER_MAX_SECONDS", raising=False)
    assert RetryPolicy.from_env() == RetryPolicy.STANDARD

    monkeypatch.setenv("PYJOBROUTER_MAX_RETRIES", "three")
    with pytest.raises(ValueError, match="PYJOBROUTER_MAX_RETRIES"):
        RetryPolicy.from_env()


# =============================================================================
# Execution record
# =============================================================================


def test_create_initial_record():
    record = create_initial_record("user.created", {"id": "123"})

    assert record.event.event_name == "user.created"
    assert record.event.data == {"id": "123"}
    assert record.state == Ready()
    assert record.function_states == {}
    assert record.number_of_previous_attempts == 0
    assert record.number_of_failed_previous_attempts == 0
    assert record.include_functions is None
    assert record.exclude_functions is None
    assert len({record.execution_id, record.event.job_id, record.event.trace_id}) == 3


def test_create_initial_record_keeps_given_ids():
    record = create_initial_record("e", job_id="job-1", trace_id="trace-1")
    assert record.event.job_id == "job-1"
    assert record.event.trace_id == "trace-1"


def test_create_initial_record_with_delay_starts_sleeping():
    before = datetime.now(UTC)
    record = create_initial_record("e", delay_seconds=120)

    assert isinstance(record.state, Sleeping)
    assert record.state.number_of_seconds_to_sleep == 120
    until = parse_iso(record.state.sleeping_until_iso)
    assert before + timedelta(seconds=119) <= until <= before + timedelta(seconds=122)


def test_clone_shares_no_mutable_state():
    record = create_initial_record("e", {"items": [1, 2]})
    record.function_states["f"] = FunctionExecutionState.initial("f", record.execution_id)

    copy = record.clone()
    copy.event.data["items"].append(3)
    copy.function_states["f"].step_states["s"] = StepState.pending("x")

    assert record.event.data == {"items": [1, 2]}
    assert record.function_states["f"].step_states == {}


class StatusError(Exception):
    def __init__(self, message: str, *, status: int):
        super().__init__(message)
        self.status = status


def test_clone_converts_live_errors_to_plain_payloads():
    error = StatusError("unavailable", status=503)
    record = create_initial_record("e")
    fn_state = FunctionExecutionState.initial("f", record.execution_id)
    fn_state.state = StepState(
        status=StepStatus.ERROR,
        number_of_previous_attempts=1,
        number_of_failed_previous_attempts=1,
        execution_id=record.execution_id,
        err=error,
    )
    record.function_states["f"] = fn_state
    record.state = ErrorRetryable("2030-01-01T00:00:00.000Z", 10, error)

    copy = record.clone()

    plain = {"name": "StatusError", "message": "unavailable"}
    assert copy.function_states["f"].state.err == plain
    assert copy.state.error == plain
    assert record.function_states["f"].state.err is error


def test_record_dict_roundtrip_with_failures():
    record = create_initial_record("e", {"n": 1}, job_id="job", trace_id="trace")
    fn_state = FunctionExecutionState.initial("f", record.execution_id)
    fn_state.step_states["s"] = StepState.pending("x").failed(RuntimeError("nope"), "x")
    fn_state.state = fn_state.state.failed(RuntimeError("nope"), "x")
    record.function_states["f"] = fn_state
    record.exclude_functions = ["g"]
    record.state = CompleteWithError(error=RuntimeError("nope"))

    data = record.to_dict()
    assert data["state"] == {
        "status": "complete-with-error",
        "error": {"name": "RuntimeError", "message": "nope"},
    }
    assert data["functionStates"]["f"]["stepStates"]["s"]["err"] == {
        "name": "RuntimeError",
        "message": "nope",
    }
    assert data["excludeFunctions"] == ["g"]
    assert "includeFunctions" not in data

    restored = ExecutionRecord.from_dict(json.loads(json.dumps(data)))
    assert restored.event == record.event
    assert restored.exclude_functions == ["g"]
    assert restored.state.status == JobStatus.COMPLETE_WITH_ERROR
    assert restored.function_states["f"].step_states["s"].status == StepStatus.ERROR


def test_to_json_never_raises_on_unserializable_values():
    record = create_initial_record("e", {"when": datetime(2024, 1, 1, tzinfo=UTC)})
    fn_state = FunctionExecutionState.initial("f", record.execution_id)
    fn_state.state = fn_state.state.succeeded({"err": ValueError("inner"), "s": {1}}, "x")
    record.function_states["f"] = fn_state
    record.state = MaxRetriesExceeded(error=ValueError("outer"))

    text = record.to_json()

    restored = ExecutionRecord.from_json(text)
    assert restored.state.status == JobStatus.MAX_RETRIES_EXCEEDED
    assert restored.state.error == {"name": "ValueError", "message": "outer"}
    assert restored.event.data == {"when": "2024-01-01 00:00:00+00:00"}


@pytest.mark.parametrize(
    "state",
    [
        Ready(),
        Sleeping("2030-01-01T00:00:00.000Z", 10),
        ErrorRetryable("2030-01-01T00:00:00.000Z", 10, "boom"),
        Complete(),
        CompleteWithError("boom"),
        MaxRetriesExceeded(None),
    ],
)
def test_job_state_from_dict(state):
    assert job_state_from_dict(state.to_dict()) == state


def test_job_state_from_dict_rejects_unknown_status():
    with pytest.raises(ValueError):
        job_state_from_dict({"status": "exploded"})


def test_event_is_immutable():
    event = Event("e", None, "job", "trace")
    with pytest.raises(AttributeError):
        event.trace_id = "other"
