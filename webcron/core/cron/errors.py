"""
Exceptions raised by the cron registry, store and coordinator.
"""
from typing import Any


class CronError(Exception):
    """Base class for cron errors."""
    pass


class InvalidScopeError(CronError, ValueError):
    """Raised when a cron pass is requested for an unknown scope."""

    def __init__(self, scope: Any):
        self.scope = scope
        super().__init__(f'Invalid scope "{scope}"')


class CronValidationError(CronError, ValueError):
    """Raised when a cron job definition or job module is invalid."""
    pass


class DuplicateCronJobError(CronValidationError):
    """Raised when a cron job name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Cron job "{name}" is already registered')


class LockTimeoutError(CronError):
    """Raised when the cron table lock cannot be acquired in time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Could not lock the cron table within {timeout:g} seconds")
