"""
Simple in-memory metrics for cron passes: passes per scope, executions and failures per job.

Counters are updated from concurrent passes (threadpool workers), so access is
serialized with a lock.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

logger = logging.getLogger("webcron.cron.metrics")


class CronMetrics:
    """In-memory counters for cron passes and job executions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clear()

    def _clear(self) -> None:
        self._passes_total: Dict[str, int] = {}
        self._jobs_executed: Dict[str, int] = {}
        self._jobs_failed: Dict[str, int] = {}
        self._last_pass_at: Optional[datetime] = None

    def record_pass(self, scope: str, at: datetime) -> None:
        with self._lock:
            self._passes_total[scope] = self._passes_total.get(scope, 0) + 1
            self._last_pass_at = at

    def record_job(self, job_name: str, success: bool) -> None:
        with self._lock:
            self._jobs_executed[job_name] = self._jobs_executed.get(job_name, 0) + 1
            if success:
                return
            failures = self._jobs_failed[job_name] = self._jobs_failed.get(job_name, 0) + 1
        logger.debug("cron job %s failed (%s failures)", job_name, failures)

    def get_pass_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._passes_total)

    def get_job_stats(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {
                "executed": dict(self._jobs_executed),
                "failed": dict(self._jobs_failed),
            }

    @property
    def last_pass_at(self) -> Optional[datetime]:
        return self._last_pass_at

    def to_dict(self) -> Dict[str, object]:
        last_pass_at = self._last_pass_at
        return {
            "passes": self.get_pass_stats(),
            "jobs": self.get_job_stats(),
            "lastPassAt": last_pass_at.isoformat() if last_pass_at else None,
        }

    def reset(self) -> None:
        with self._lock:
            self._clear()


_metrics = CronMetrics()


def get_metrics() -> CronMetrics:
    return _metrics


def record_pass(scope: str, at: datetime) -> None:
    _metrics.record_pass(scope, at)


def record_job(job_name: str, success: bool) -> None:
    _metrics.record_job(job_name, success)
