"""
Cron job and scope models.

Contract:
- scope: "web" (opportunistic, during an HTTP request) | "cli" (explicit command)
- job: unique name + cron interval + action(scope)
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from webcron.core.cron.errors import CronValidationError, InvalidScopeError
from webcron.core.cron.expression import validate_interval

MAX_NAME_LENGTH = 255


class Scope(str, Enum):
    """Execution context of a cron pass."""
    WEB = "web"
    CLI = "cli"

    @classmethod
    def parse(cls, value: Union["Scope", str]) -> "Scope":
        """Return the Scope for value or raise InvalidScopeError."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for scope in cls:
                if scope.value == value:
                    return scope
        raise InvalidScopeError(value)

    def __str__(self) -> str:
        return self.value


CronAction = Callable[[Scope], None]


@dataclass(frozen=True)
class CronJob:
    """A registered cron job. Immutable once created."""
    name: str
    interval: str
    action: CronAction = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise CronValidationError("cron job name must be a non-empty string")
        if len(self.name) > MAX_NAME_LENGTH:
            raise CronValidationError(f"cron job name must be at most {MAX_NAME_LENGTH} characters")
        if not callable(self.action):
            raise CronValidationError(f'action of cron job "{self.name}" is not callable')
        object.__setattr__(self, "interval", validate_interval(self.interval))

    def __call__(self, scope: Scope) -> None:
        self.action(scope)


@dataclass(frozen=True)
class CronJobStatus:
    """Schedule view of one job, as shown by `webcron list` and /_cron/status."""
    name: str
    interval: str
    last_run: Optional[datetime]
    next_run: Optional[datetime]
    due: bool

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "interval": self.interval,
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
            "due": self.due,
        }
