"""Observability: metrics for cron passes."""
from webcron.core.observability.metrics import (
    CronMetrics,
    get_metrics,
    record_pass,
    record_job,
)

__all__ = [
    "CronMetrics",
    "get_metrics",
    "record_pass",
    "record_job",
]
