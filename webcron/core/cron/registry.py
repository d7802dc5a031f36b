"""
Cron job registry, filled once at application bootstrap.

Jobs come from modules listed in CRON_JOB_MODULES; each module exposes
`register_cron_jobs(registry)`. The coordinator only ever sees the frozen
tuple returned by `list_jobs()`.
"""
import importlib
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from webcron.core.cron.errors import CronValidationError, DuplicateCronJobError
from webcron.core.cron.models import CronAction, CronJob

logger = logging.getLogger(__name__)

REGISTER_HOOK = "register_cron_jobs"


class CronJobRegistry:
    """Ordered collection of uniquely named cron jobs."""

    def __init__(self, jobs: Iterable[CronJob] = ()):
        self._jobs: Dict[str, CronJob] = {}
        for job in jobs:
            self.add(job)

    def add(self, job: CronJob) -> CronJob:
        """Register an already built job."""
        if job.name in self._jobs:
            raise DuplicateCronJobError(job.name)
        self._jobs[job.name] = job
        logger.debug('Registered cron job "%s" (%s)', job.name, job.interval)
        return job

    def add_cron_job(self, name: str, interval: str, action: CronAction) -> CronJob:
        """Register action under name, run on interval."""
        return self.add(CronJob(name=name, interval=interval, action=action))

    def cron_job(self, interval: str, name: Optional[str] = None) -> Callable[[CronAction], CronAction]:
        """
        Decorator to register a cron job.

        Usage:
            @registry.cron_job("hourly")
            def purge_temp_folder(scope: Scope) -> None:
                ...

        The name defaults to "<module>.<qualname>" of the decorated function.
        """
        def decorator(func: CronAction) -> CronAction:
            job_name = name or f"{func.__module__}.{func.__qualname__}"
            self.add_cron_job(job_name, interval, func)
            return func
        return decorator

    def get(self, name: str) -> Optional[CronJob]:
        """Get a job by name."""
        return self._jobs.get(name)

    def list_jobs(self) -> Tuple[CronJob, ...]:
        """All jobs, in registration order."""
        return tuple(self._jobs.values())

    def names(self) -> List[str]:
        return list(self._jobs.keys())

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs


def load_job_modules(registry: CronJobRegistry, modules: Iterable[str]) -> CronJobRegistry:
    """Import each module and let it register its jobs."""
    for module_name in modules:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise CronValidationError(f"cannot import cron job module {module_name!r}: {e}") from e
        hook = getattr(module, REGISTER_HOOK, None)
        if not callable(hook):
            raise CronValidationError(f"cron job module {module_name!r} has no {REGISTER_HOOK}(registry) function")
        before = len(registry)
        hook(registry)
        logger.info("Loaded %s cron job(s) from %s", len(registry) - before, module_name)
    return registry
