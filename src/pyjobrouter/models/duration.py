"""Duration conversion and wake-time arithmetic for timed suspensions.

Durations are given as ``(amount, unit)`` pairs, for example ``(1, "days")``,
or as a ``timedelta``. Wake times are rendered as UTC ISO-8601 strings with
millisecond precision and a ``Z`` suffix so external schedulers can parse
them without timezone guessing.
"""

from datetime import UTC, datetime, timedelta

__all__ = [
    "Duration",
    "to_seconds",
    "wake_time",
    "to_iso",
    "parse_iso",
    "utc_now",
]

_SECONDS_PER_UNIT = {
    "second": 1,
    "seconds": 1,
    "minute": 60,
    "minutes": 60,
    "hour": 3600,
    "hours": 3600,
    "day": 86400,
    "days": 86400,
}

Duration = tuple[float, str] | list | timedelta


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_seconds(duration: Duration) -> int:
    """Convert a duration to a whole number of seconds.

    Args:
        duration: ``(amount, unit)`` with unit in seconds/minutes/hours/days
                  (singular accepted), or a ``timedelta``

    Returns:
        Number of seconds, rounded to the nearest integer

    Raises:
        ValueError: If the unit is unknown or the amount is negative

    Example:
        ```python
        to_seconds((1, "days"))    # 86400
        to_seconds([90, "minutes"])  # 5400
        ```
    """
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    else:
        try:
            amount, unit = duration
        except (TypeError, ValueError) as e:
            raise ValueError(f"Duration must be (amount, unit), got {duration!r}") from e

        multiplier = _SECONDS_PER_UNIT.get(str(unit).lower())
        if multiplier is None:
            raise ValueError(
                f"Unknown duration unit {unit!r}, expected one of seconds, minutes, hours, days"
            )
        seconds = amount * multiplier

    if seconds < 0:
        raise ValueError(f"Duration must be non-negative, got {duration!r}")

    return int(round(seconds))


def to_iso(moment: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO string produced by to_iso() (or any aware ISO string)."""
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def wake_time(duration: Duration, now: datetime | None = None) -> tuple[str, int]:
    """Compute the absolute wake time for a suspension.

    Args:
        duration: Suspension length, see to_seconds()
        now: Reference time (defaults to the current UTC time)

    Returns:
        Tuple of (until_iso, delay_seconds)
    """
    delay_seconds = to_seconds(duration)
    start = now if now is not None else utc_now()
    return to_iso(start + timedelta(seconds=delay_seconds)), delay_seconds
