"""
Retry policy configuration for job ingestion.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates the retry budget and backoff window, allowing
different strategies without modifying the ingestion engine.

Design Rationale:
- Safe default: three failed rounds before a job is exhausted
- The budget counts ROUNDS with at least one failure, not function attempts
- Backoff is a random jitter window so retried jobs do not stampede
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

DEFAULT_MAX_RETRIES = 3
DEFAULT_JITTER_MIN_SECONDS = 5
DEFAULT_JITTER_MAX_SECONDS = 30


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for job retry behavior.

    Examples:
        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Simple: just specify the retry budget
        policy = RetryPolicy.with_max_retries(1)

        # Custom policy: full control
        policy = RetryPolicy(max_retries=5, jitter_min_seconds=1, jitter_max_seconds=10)

        # From environment (PYJOBROUTER_MAX_RETRIES etc.)
        policy = RetryPolicy.from_env()
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    """Number of failed rounds tolerated before the job is exhausted.

    With max_retries = 3 the fourth failed round reports maxRetriesExceeded.
    """

    jitter_min_seconds: int = DEFAULT_JITTER_MIN_SECONDS
    """Lower bound of the retry backoff window in seconds."""

    jitter_max_seconds: int = DEFAULT_JITTER_MAX_SECONDS
    """Upper bound of the retry backoff window in seconds (inclusive)."""

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)

    def __post_init__(self):
        """Validate invariants after creation."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")

        if self.jitter_min_seconds < 0:
            raise ValueError(
                f"jitter_min_seconds must be non-negative, got {self.jitter_min_seconds}"
            )

        if self.jitter_min_seconds > self.jitter_max_seconds:
            raise ValueError(
                f"jitter window is empty: {self.jitter_min_seconds} > {self.jitter_max_seconds}"
            )

    @classmethod
    def with_max_retries(cls, max_retries: int) -> RetryPolicy:
        """
        Create a policy with a custom retry budget (uses the standard jitter).

        Args:
            max_retries: Number of failed rounds tolerated

        Returns:
            RetryPolicy with standard jitter window
        """
        return cls(max_retries=max_retries)

    @classmethod
    def from_env(cls) -> RetryPolicy:
        """
        Build a policy from environment variables.

        Reads PYJOBROUTER_MAX_RETRIES, PYJOBROUTER_JITTER_MIN_SECONDS and
        PYJOBROUTER_JITTER_MAX_SECONDS. Unset variables fall back to the
        standard values.

        Raises:
            ValueError: If a variable is set but is not a valid integer
        """
        return cls(
            max_retries=_env_int("PYJOBROUTER_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            jitter_min_seconds=_env_int(
                "PYJOBROUTER_JITTER_MIN_SECONDS", DEFAULT_JITTER_MIN_SECONDS
            ),
            jitter_max_seconds=_env_int(
                "PYJOBROUTER_JITTER_MAX_SECONDS", DEFAULT_JITTER_MAX_SECONDS
            ),
        )

    def retry_delay_seconds(self) -> int:
        """
        Pick a randomized backoff delay for an error-retry fork.

        Returns:
            Integer number of seconds within the jitter window (inclusive)
        """
        return random.randint(self.jitter_min_seconds, self.jitter_max_seconds)

    def can_retry(self, attempts: int) -> bool:
        """
        Check whether a function with `attempts` prior attempts may retry.

        This is the per-function early warning used to fire
        on_max_retries_exceeded. It is independent from is_exhausted().
        """
        return attempts < self.max_retries

    def is_exhausted(self, failed_rounds: int) -> bool:
        """
        Check whether the job-level failed round counter spent the budget.

        Example:
            policy = RetryPolicy.with_max_retries(1)
            policy.is_exhausted(1)  # False
            policy.is_exhausted(2)  # True
        """
        return failed_rounds > self.max_retries

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"RetryPolicy(max_retries={self.max_retries}, "
            f"jitter_min_seconds={self.jitter_min_seconds}, "
            f"jitter_max_seconds={self.jitter_max_seconds})"
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


# Initialize predefined policies after class definition
RetryPolicy.NONE = RetryPolicy(max_retries=0)

RetryPolicy.STANDARD = RetryPolicy(
    max_retries=DEFAULT_MAX_RETRIES,
    jitter_min_seconds=DEFAULT_JITTER_MIN_SECONDS,  # 5 seconds
    jitter_max_seconds=DEFAULT_JITTER_MAX_SECONDS,  # 30 seconds
)
