"""
Integration tests for the SQL run-state store and the coordinator on SQLite.
"""
import sqlite3
import threading
import time
from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import NOW
from webcron.core.cron.errors import CronError, LockTimeoutError
from webcron.core.cron.models import CronJob, Scope
from webcron.core.cron.expression import next_run_date
from webcron.core.cron.service import Cron
from webcron.core.cron.storage import SqlCronJobStore
from webcron.core.memory.models import CronJobState
from webcron.core.memory.repository import CronJobStateRepository, is_lock_contention


def _seed(engine, **last_runs):
    with Session(bind=engine) as db:
        for name, last_run in last_runs.items():
            db.add(CronJobState(name=name, last_run=last_run))
        db.commit()


def _last_runs(engine):
    with Session(bind=engine) as db:
        return {s.name: s.last_run for s in db.query(CronJobState).all()}


INTERVALS = {"A": "* * * * *", "B": "0 0 1 1 *", "C": "0 0 * * *"}


def _recorder(name, log):
    return CronJob(name, INTERVALS[name], lambda scope: log.append((name, scope)))


def test_lock_persist_flush_unlock_roundtrip(engine, sql_store):
    sql_store.lock_table()
    assert sql_store.locked
    assert sql_store.find_one_by_name("job") is None
    sql_store.persist(CronJobState(name="job", last_run=NOW))
    sql_store.flush()
    sql_store.unlock_table()
    assert not sql_store.locked
    assert _last_runs(engine) == {"job": NOW}


def test_timestamps_come_back_aware_utc(engine, sql_store):
    _seed(engine, job=NOW)
    sql_store.lock_table()
    try:
        state = sql_store.find_one_by_name("job")
    finally:
        sql_store.unlock_table()
    assert state.last_run == NOW
    assert state.last_run.utcoffset() == timedelta(0)


def test_unlock_without_flush_discards_changes(engine, sql_store):
    sql_store.lock_table()
    sql_store.persist(CronJobState(name="job", last_run=NOW))
    sql_store.unlock_table()
    assert _last_runs(engine) == {}


def test_unlock_is_idempotent(sql_store):
    sql_store.unlock_table()
    sql_store.lock_table()
    sql_store.unlock_table()
    sql_store.unlock_table()
    assert not sql_store.locked


def test_lookup_requires_lock(sql_store):
    with pytest.raises(CronError, match="locked first"):
        sql_store.find_one_by_name("job")
    with pytest.raises(CronError, match="locked first"):
        sql_store.flush()


def test_double_lock_is_refused(sql_store):
    sql_store.lock_table()
    try:
        with pytest.raises(CronError, match="already locked"):
            sql_store.lock_table()
    finally:
        sql_store.unlock_table()


def test_second_store_times_out_while_lock_held(engine, sql_store):
    other = SqlCronJobStore(engine=engine, lock_timeout=0.2)
    sql_store.lock_table()
    try:
        with pytest.raises(LockTimeoutError) as exc_info:
            other.lock_table()
        assert exc_info.value.timeout == 0.2
        assert not other.locked
    finally:
        sql_store.unlock_table()
    other.lock_table()
    other.unlock_table()


def test_find_all_and_delete_missing(engine, sql_store):
    _seed(engine, a=NOW, b=None, c=NOW - timedelta(days=1))
    assert [s.name for s in sql_store.find_all()] == ["a", "b", "c"]
    sql_store.lock_table()
    try:
        assert sql_store.delete_missing(["b"]) == 2
        sql_store.flush()
    finally:
        sql_store.unlock_table()
    assert _last_runs(engine) == {"b": None}


def test_scenario_cli_runs_new_and_overdue_jobs(engine, sql_store, metrics):
    _seed(engine, B=NOW - timedelta(days=365))
    log = []
    cron = Cron([_recorder("A", log), _recorder("B", log)], sql_store, clock=lambda: NOW, metrics=metrics)
    cron.run("cli")
    assert log == [("A", Scope.CLI), ("B", Scope.CLI)]
    assert _last_runs(engine) == {"A": NOW, "B": NOW}


def test_scenario_web_skips_recent_job(engine, sql_store, metrics):
    last_run = NOW - timedelta(minutes=1)
    _seed(engine, C=last_run)
    log = []
    cron = Cron([_recorder("C", log)], sql_store, clock=lambda: NOW, metrics=metrics)
    assert cron.run("web") == ()
    assert log == []
    assert _last_runs(engine) == {"C": last_run}


def test_second_pass_in_same_minute_runs_nothing(engine, sql_store, metrics):
    log = []
    cron = Cron([_recorder("A", log), _recorder("C", log)], sql_store, clock=lambda: NOW, metrics=metrics)
    cron.run(Scope.WEB)
    cron.run(Scope.CLI)
    assert log == [("A", Scope.WEB), ("C", Scope.WEB)]


def test_flush_failure_releases_lock_and_runs_nothing(engine, sql_store, metrics, monkeypatch):
    log = []

    def failing_flush():
        raise RuntimeError("flush failed")

    monkeypatch.setattr(sql_store, "flush", failing_flush)
    cron = Cron([_recorder("A", log)], sql_store, clock=lambda: NOW, metrics=metrics)
    with pytest.raises(RuntimeError, match="flush failed"):
        cron.run(Scope.CLI)
    assert log == []
    assert not sql_store.locked
    assert _last_runs(engine) == {}
    # the table is free again
    other = SqlCronJobStore(engine=engine, lock_timeout=0.2)
    other.lock_table()
    other.unlock_table()


def test_prune_against_database(engine, sql_store, metrics):
    _seed(engine, A=NOW, retired=NOW)
    cron = Cron([_recorder("A", [])], sql_store, clock=lambda: NOW, metrics=metrics)
    assert cron.prune() == 1
    assert set(_last_runs(engine)) == {"A"}


def _slow_next_run(inside_lock):
    """next_run_date that signals the first call and holds the lock a little longer."""

    def next_run(interval, last_run):
        if not inside_lock.is_set():
            inside_lock.set()
            time.sleep(0.3)
        return next_run_date(interval, last_run)

    return next_run


def _run_in_threads(crons, inside_lock):
    errors = []

    def run(cron):
        try:
            cron.run(Scope.WEB)
        except Exception as e:
            errors.append(e)

    first = threading.Thread(target=run, args=(crons[0],))
    first.start()
    assert inside_lock.wait(5)
    others = [threading.Thread(target=run, args=(cron,)) for cron in crons[1:]]
    for thread in others:
        thread.start()
    for thread in [first] + others:
        thread.join(10)
    return errors


def test_overlapping_passes_on_one_cron_wait_for_the_lock(engine, sql_store, metrics):
    _seed(engine, A=NOW - timedelta(minutes=2))
    log = []
    inside_lock = threading.Event()
    cron = Cron(
        [_recorder("A", log)],
        sql_store,
        clock=lambda: NOW,
        next_run=_slow_next_run(inside_lock),
        metrics=metrics,
    )

    errors = _run_in_threads([cron, cron], inside_lock)

    assert errors == []
    assert log == [("A", Scope.WEB)]
    assert _last_runs(engine) == {"A": NOW}
    assert not sql_store.locked
    assert metrics.get_pass_stats() == {"web": 2}


def test_concurrent_stores_run_a_job_once_per_instant(engine, metrics):
    _seed(engine, A=NOW - timedelta(minutes=2))
    log = []
    inside_lock = threading.Event()
    next_run = _slow_next_run(inside_lock)
    crons = [
        Cron(
            [_recorder("A", log)],
            SqlCronJobStore(engine=engine, lock_timeout=5),
            clock=lambda: NOW,
            next_run=next_run,
            metrics=metrics,
        )
        for _ in range(3)
    ]

    errors = _run_in_threads(crons, inside_lock)

    assert errors == []
    assert log == [("A", Scope.WEB)]
    assert _last_runs(engine) == {"A": NOW}


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "dialect, orig, expected",
    [
        ("sqlite", sqlite3.OperationalError("database is locked"), True),
        ("sqlite", sqlite3.OperationalError("unable to open database file"), False),
        ("sqlite", sqlite3.OperationalError("attempt to write a readonly database"), False),
        ("postgresql", _PgError("canceling statement due to lock timeout", "55P03"), True),
        ("postgresql", _PgError("could not connect to server", "08006"), False),
        ("mysql", Exception(1205, "Lock wait timeout exceeded; try restarting transaction"), True),
        ("mysql", Exception(2006, "MySQL server has gone away"), False),
    ],
)
def test_is_lock_contention(dialect, orig, expected):
    assert is_lock_contention(dialect, OperationalError("LOCK", None, orig)) is expected


def test_lock_table_lets_non_lock_errors_through():
    def broken(statement):
        raise OperationalError(statement, None, sqlite3.OperationalError("disk I/O error"))

    connection = SimpleNamespace(dialect=SimpleNamespace(name="sqlite"), exec_driver_sql=broken)
    with pytest.raises(OperationalError, match="disk I/O error"):
        CronJobStateRepository.lock_table(connection, 5)


def test_lock_table_reports_busy_database_as_timeout():
    def busy(statement):
        if statement == "BEGIN EXCLUSIVE":
            raise OperationalError(statement, None, sqlite3.OperationalError("database is locked"))

    connection = SimpleNamespace(dialect=SimpleNamespace(name="sqlite"), exec_driver_sql=busy)
    with pytest.raises(LockTimeoutError):
        CronJobStateRepository.lock_table(connection, 5)
