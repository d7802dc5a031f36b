"""
Cron scheduling coordinator for web- and CLI-triggered job passes.

Persistence: SQL table cron_job (one last-run row per job name), locked
exclusively while a pass decides which jobs are due. The coordinator lives in
webcron.core.cron.service, the SQL store in webcron.core.cron.storage.
"""
from webcron.core.cron.errors import (
    CronError,
    CronValidationError,
    DuplicateCronJobError,
    InvalidScopeError,
    LockTimeoutError,
)
from webcron.core.cron.models import CronJob, CronJobStatus, Scope
from webcron.core.cron.registry import CronJobRegistry, load_job_modules

__all__ = [
    "CronError",
    "CronValidationError",
    "DuplicateCronJobError",
    "InvalidScopeError",
    "LockTimeoutError",
    "CronJob",
    "CronJobStatus",
    "Scope",
    "CronJobRegistry",
    "load_job_modules",
]
