"""
Core collaborators of the ingestion engine.

- Hooks: optional lifecycle callbacks and their argument types
- HandlerRegistry: event name → job functions
- JobFunction: a named handler
- RegistrationError: invalid registration
"""

from pyjobrouter.core.hooks import ErrorHookArgs, FunctionHookArgs, Hooks, StepHookArgs, fire_hook
from pyjobrouter.core.registry import HandlerRegistry, JobFunction, RegistrationError

__all__ = [
    "Hooks",
    "FunctionHookArgs",
    "StepHookArgs",
    "ErrorHookArgs",
    "fire_hook",
    "HandlerRegistry",
    "JobFunction",
    "RegistrationError",
]
