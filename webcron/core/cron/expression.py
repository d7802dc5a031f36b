"""
Cron expression handling backed by croniter.

- 5-field (minute hour day month weekday) or 6-field (seconds last) expressions
- croniter macros such as @hourly, @daily, @yearly
- shorthand names: minutely, hourly, daily, weekly, monthly, yearly, annually
"""
from datetime import datetime, timezone

from croniter import croniter, CroniterBadCronError, CroniterBadDateError

from webcron.core.cron.errors import CronValidationError


SHORTHAND_INTERVALS = {
    "minutely": "* * * * *",
    "hourly": "0 * * * *",
    "daily": "0 0 * * *",
    "weekly": "0 0 * * 0",
    "monthly": "0 0 1 * *",
    "yearly": "0 0 1 1 *",
    "annually": "0 0 1 1 *",
}


def normalize_interval(interval: str) -> str:
    """Trim the expression, collapse whitespace and expand shorthand names."""
    if not isinstance(interval, str):
        raise CronValidationError(f"cron interval must be a string, got {type(interval).__name__}")
    normalized = " ".join(interval.split())
    return SHORTHAND_INTERVALS.get(normalized.lower(), normalized)


def validate_interval(interval: str) -> str:
    """Return the normalized interval or raise CronValidationError."""
    normalized = normalize_interval(interval)
    if not normalized:
        raise CronValidationError("cron interval must be non-empty")
    if not normalized.startswith("@"):
        fields = normalized.split(" ")
        if len(fields) not in (5, 6):
            raise CronValidationError(
                f"cron interval must be 5-field (minute hour day month weekday) "
                f"or 6-field with seconds, got {interval!r}"
            )
    if not croniter.is_valid(normalized):
        raise CronValidationError(f"invalid cron interval {interval!r}")
    return normalized


def next_run_date(interval: str, last_run: datetime) -> datetime:
    """
    First occurrence of interval strictly after last_run.

    The result carries last_run's timezone; naive input is treated as UTC.
    """
    if last_run.tzinfo is None:
        last_run = last_run.replace(tzinfo=timezone.utc)
    try:
        return croniter(normalize_interval(interval), last_run).get_next(datetime)
    except (CroniterBadCronError, CroniterBadDateError, ValueError, KeyError) as e:
        raise CronValidationError(f"invalid cron interval {interval!r}: {e}") from e
