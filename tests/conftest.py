"""
Pytest configuration and fixtures for pyjobrouter tests.

Provides an in-memory queue harness that drives a job to completion,
a hook recorder, and hypothesis strategies for the models.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any

import pytest
from hypothesis import strategies as st

from pyjobrouter import (
    ExecutionRecord,
    Hooks,
    IngestResult,
    IngestStatus,
    JobRouter,
    JobScheduler,
    JobWorker,
    StepState,
    StepStatus,
    get_delay_seconds,
)

# =============================================================================
# Insights: what ran in each round
# =============================================================================


class JobInsights:
    """Summaries of ingestion results for readable assertions."""

    @staticmethod
    def touched(result: IngestResult) -> dict[str, dict[str, str]]:
        """Steps written during this ingestion, per function.

        A step counts as touched when its execution_id is the ingestion's
        execution_id; cached steps keep their old id and are left out.
        """
        execution_id = result.result.execution_id
        summary: dict[str, dict[str, str]] = {}
        for name, fn_state in result.result.function_states.items():
            steps = {
                step_name: str(state.status)
                for step_name, state in fn_state.step_states.items()
                if state.execution_id == execution_id
            }
            if steps or fn_state.state.execution_id == execution_id:
                summary[name] = steps
        return summary

    @staticmethod
    def summary(results: list[IngestResult]) -> dict[str, dict[str, dict[str, str]]]:
        return {f"run {i}": JobInsights.touched(result) for i, result in enumerate(results)}


@dataclass
class RunOutcome:
    results: list[IngestResult]
    sent: list[ExecutionRecord]

    @property
    def final_status(self) -> IngestStatus | None:
        return self.results[-1].status if self.results else None

    @property
    def summary(self) -> dict[str, dict[str, dict[str, str]]]:
        return JobInsights.summary(self.results)


# =============================================================================
# In-memory queue harness
# =============================================================================


class MockJobRouter:
    """
    Drives a job through a JobWorker and an in-memory delayed queue.

    Time is virtual: a job sent with delay d becomes due at now + d, and
    the queue always delivers the job with the earliest due time (ties in
    send order). Error retries (seconds) therefore run before sleeps (days).
    """

    def __init__(self, router: JobRouter, max_rounds: int = 50):
        self.router = router
        self.max_rounds = max_rounds
        self.now = 0
        self.sent: list[ExecutionRecord] = []
        self._queue: list[tuple[int, int, ExecutionRecord]] = []
        self._counter = itertools.count()
        self.scheduler = JobScheduler(self._send)
        self.worker = JobWorker(router, self.scheduler)

    async def _send(self, jobs: list[ExecutionRecord]) -> dict[str, Any]:
        for job in jobs:
            self.sent.append(job)
            due = self.now + get_delay_seconds(job)
            heapq.heappush(self._queue, (due, next(self._counter), job))
        return {"queued": len(jobs)}

    def __len__(self) -> int:
        return len(self._queue)

    async def run(
        self, event_name: str, data: Any = None, trace_id: str | None = None
    ) -> RunOutcome:
        """Send an event and handle jobs until the queue is empty."""
        await self.scheduler.send_event(event_name, data, trace_id=trace_id)
        results: list[IngestResult] = []

        while self._queue:
            if len(results) >= self.max_rounds:
                raise AssertionError(f"job did not settle within {self.max_rounds} rounds")
            due, _, job = heapq.heappop(self._queue)
            self.now = max(self.now, due)
            results.append(await self.worker.handle_job(job))

        return RunOutcome(results=results, sent=list(self.sent))


# =============================================================================
# Hook recorder
# =============================================================================


@dataclass
class HookRecorder:
    """Records every hook call as (hook_name, args)."""

    calls: list[tuple[str, Any]] = field(default_factory=list)

    def _record(self, name: str):
        def hook(args):
            self.calls.append((name, args))

        return hook

    def hooks(self) -> Hooks:
        return Hooks(
            before_execute_function=self._record("before_execute_function"),
            after_execute_function=self._record("after_execute_function"),
            before_execute_step=self._record("before_execute_step"),
            after_execute_step=self._record("after_execute_step"),
            on_error=self._record("on_error"),
            on_max_retries_exceeded=self._record("on_max_retries_exceeded"),
        )

    def named(self, name: str) -> list[Any]:
        return [args for hook_name, args in self.calls if hook_name == name]

    def count(self, name: str) -> int:
        return len(self.named(name))


class Counter:
    """Callable counting its invocations; returns or raises a configured value."""

    def __init__(self, result: Any = None, error: BaseException | None = None):
        self.calls: list[tuple] = []
        self.result = result
        self.error = error

    def __call__(self, *args):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.result

    @property
    def count(self) -> int:
        return len(self.calls)


@pytest.fixture
def router() -> JobRouter:
    return JobRouter()


@pytest.fixture
def recorder() -> HookRecorder:
    return HookRecorder()


@pytest.fixture
def make_harness():
    """Factory fixture: make_harness(router) → MockJobRouter."""

    def factory(router: JobRouter, max_rounds: int = 50) -> MockJobRouter:
        return MockJobRouter(router, max_rounds=max_rounds)

    return factory


# =============================================================================
# Hypothesis strategies
# =============================================================================

names = st.text(min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll")))

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=20),
    lambda children: st.lists(children, max_size=3)
    | st.dictionaries(st.text(max_size=5), children, max_size=3),
    max_leaves=10,
)


@st.composite
def step_state_strategy(draw):
    """Strategy for generating valid StepState objects."""
    attempts = draw(st.integers(min_value=0, max_value=20))
    failed = draw(st.integers(min_value=0, max_value=attempts))
    status = draw(st.sampled_from(list(StepStatus)))

    kwargs: dict[str, Any] = {}
    if status == StepStatus.SUCCESS:
        kwargs["result"] = draw(json_values)
    elif status == StepStatus.ERROR:
        kwargs["err"] = draw(st.text(max_size=20))
    elif status == StepStatus.SLEEPING:
        kwargs["until_iso"] = "2030-01-01T00:00:00.000Z"
        kwargs["delay_seconds"] = draw(st.integers(min_value=0, max_value=10**6))

    return StepState(
        status=status,
        number_of_previous_attempts=attempts,
        number_of_failed_previous_attempts=failed,
        execution_id=draw(st.uuids().map(str)),
        **kwargs,
    )
