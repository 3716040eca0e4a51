"""Handler registry mapping event names to their job functions.

The registry is built once, before the first ingestion, and is read-only
from the engine's point of view. Registering an event again replaces the
previous list of functions for that event.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ["JobFunction", "HandlerRegistry", "RegistrationError"]


class RegistrationError(Exception):
    """Raised when a set of job functions cannot be registered."""

    pass


@dataclass(frozen=True)
class JobFunction:
    """A named handler for an event.

    The name is the memoization key of the function's state, so it must
    stay stable across deployments for in-flight records to resume.
    """

    function_name: str
    handler: Callable[[Any], Awaitable[Any] | Any]


class HandlerRegistry:
    """Registry of job functions keyed by event name.

    Example:
        registry = HandlerRegistry()
        registry.register("user.created", [JobFunction("send_welcome", send_welcome)])
        registry.get("user.created")  # [JobFunction(...)]
    """

    def __init__(self):
        self._functions: dict[str, list[JobFunction]] = {}

    def register(self, event_name: str, functions: Iterable[JobFunction]) -> None:
        """Register the functions handling `event_name`, replacing prior ones.

        Raises:
            RegistrationError: If a function name appears twice, or an entry
                has an empty name or a handler that is not callable
        """
        functions = list(functions)
        seen: set[str] = set()
        for fn in functions:
            if not fn.function_name:
                raise RegistrationError(f"Function for event {event_name!r} has an empty name")
            if not callable(fn.handler):
                raise RegistrationError(
                    f"Handler of {fn.function_name!r} for event {event_name!r} is not callable"
                )
            if fn.function_name in seen:
                raise RegistrationError(
                    f"Duplicate function name {fn.function_name!r} for event {event_name!r}"
                )
            seen.add(fn.function_name)

        if event_name in self._functions:
            logger.debug(f"Replacing functions registered for event {event_name!r}")

        self._functions[event_name] = functions
        logger.debug(f"Registered {len(functions)} function(s) for event {event_name!r}")

    def get(self, event_name: str) -> list[JobFunction]:
        """Functions registered for `event_name` (empty list when none)."""
        return list(self._functions.get(event_name, []))

    def event_names(self) -> list[str]:
        return list(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def __contains__(self, event_name: str) -> bool:
        return event_name in self._functions
