"""
Cron run coordinator.

One pass of `Cron.run(scope)`:
1. lock the run-state table,
2. decide which jobs are due and stamp their last run with the pass instant,
3. flush and unlock (unlock happens even if deciding or flushing fails),
4. execute the due jobs outside the lock, in registration order.
"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Protocol, Tuple, Union

from webcron.core.cron.expression import next_run_date
from webcron.core.cron.models import CronJob, CronJobStatus, Scope
from webcron.core.memory.models import CronJobState
from webcron.core.observability.metrics import CronMetrics, get_metrics

logger = logging.getLogger(__name__)


class CronJobStore(Protocol):
    """Persistence collaborator of the coordinator (see SqlCronJobStore)."""

    def lock_table(self) -> None: ...

    def unlock_table(self) -> None: ...

    def find_one_by_name(self, name: str) -> Optional[CronJobState]: ...

    def persist(self, state: CronJobState) -> None: ...

    def flush(self) -> None: ...

    def delete_missing(self, keep_names: Iterable[str]) -> int: ...

    def find_all(self) -> List[CronJobState]: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Cron:
    """Runs the registered cron jobs that are due."""

    SCOPE_WEB = Scope.WEB
    SCOPE_CLI = Scope.CLI

    def __init__(
        self,
        jobs: Iterable[CronJob],
        store: CronJobStore,
        clock: Callable[[], datetime] = utcnow,
        next_run: Callable[[str, datetime], datetime] = next_run_date,
        metrics: Optional[CronMetrics] = None,
    ):
        self._jobs: Tuple[CronJob, ...] = tuple(jobs)
        self._store = store
        self._clock = clock
        self._next_run = next_run
        self._metrics = metrics if metrics is not None else get_metrics()

    @property
    def jobs(self) -> Tuple[CronJob, ...]:
        return self._jobs

    def run(self, scope: Union[Scope, str]) -> Tuple[CronJob, ...]:
        """
        Run all registered cron jobs that are due.

        Returns the jobs that were executed. A job that raises stops the pass;
        its last run stays recorded and the remaining due jobs wait for the next pass.
        """
        scope = Scope.parse(scope)
        now = self._clock()
        due: List[CronJob] = []

        self._store.lock_table()
        try:
            for job in self._jobs:
                state = self._store.find_one_by_name(job.name)
                if state is None:
                    state = CronJobState(name=job.name)
                    self._store.persist(state)

                last_run = state.last_run
                if last_run is not None and now < self._next_run(job.interval, last_run):
                    continue

                state.last_run = now
                due.append(job)

            self._store.flush()
        finally:
            self._store.unlock_table()

        self._metrics.record_pass(scope.value, now)
        logger.info("Cron pass (%s): %s of %s job(s) due", scope.value, len(due), len(self._jobs))

        for job in due:
            logger.debug('Executing cron job "%s"', job.name)
            try:
                job(scope)
            except Exception:
                self._metrics.record_job(job.name, success=False)
                raise
            self._metrics.record_job(job.name, success=True)

        return tuple(due)

    def status(self, now: Optional[datetime] = None) -> List[CronJobStatus]:
        """Schedule view of every job. Reads without locking."""
        now = now or self._clock()
        states = {state.name: state for state in self._store.find_all()}
        result = []
        for job in self._jobs:
            state = states.get(job.name)
            last_run = state.last_run if state is not None else None
            next_run = self._next_run(job.interval, last_run) if last_run is not None else None
            result.append(CronJobStatus(
                name=job.name,
                interval=job.interval,
                last_run=last_run,
                next_run=next_run,
                due=next_run is None or now >= next_run,
            ))
        return result

    def prune(self) -> int:
        """Delete run states of jobs that are no longer registered."""
        self._store.lock_table()
        try:
            deleted = self._store.delete_missing([job.name for job in self._jobs])
            self._store.flush()
        finally:
            self._store.unlock_table()
        if deleted:
            logger.info("Pruned %s orphaned cron run state(s)", deleted)
        return deleted


def build_cron(config=None, store: Optional[CronJobStore] = None) -> Cron:
    """Wire a Cron from settings: jobs from CRON_JOB_MODULES, SQL store."""
    from webcron.core.config import settings
    from webcron.core.cron.registry import CronJobRegistry, load_job_modules
    from webcron.core.cron.storage import SqlCronJobStore

    config = config or settings
    registry = load_job_modules(CronJobRegistry(), config.job_modules())
    if store is None:
        store = SqlCronJobStore(lock_timeout=config.cron_lock_timeout)
    return Cron(registry.list_jobs(), store)


@lru_cache(maxsize=1)
def get_cron() -> Cron:
    """Application-wide Cron, built on first use."""
    return build_cron()
