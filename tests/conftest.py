"""
Shared fixtures: a throwaway SQLite database and an in-memory recording store.
"""
import os
import tempfile
from datetime import datetime, timezone

# Keep the application engine away from ~/.webcron; must run before webcron imports.
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="webcron_test_"), "webcron.db"))

import pytest

from webcron.core.memory.db import init_db, make_engine
from webcron.core.memory.models import CronJobState
from webcron.core.cron.storage import SqlCronJobStore
from webcron.core.observability.metrics import CronMetrics


NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class RecordingStore:
    """In-memory CronJobStore that records every call in order."""

    def __init__(self, states=None, flush_error=None, lock_error=None):
        self.states = {s.name: s for s in (states or [])}
        self.calls = []
        self.persisted = []
        self.flush_error = flush_error
        self.lock_error = lock_error
        self.locked = False

    def lock_table(self):
        self.calls.append("lock_table")
        if self.lock_error is not None:
            raise self.lock_error
        self.locked = True

    def unlock_table(self):
        self.calls.append("unlock_table")
        self.locked = False

    def find_one_by_name(self, name):
        assert self.locked, "find_one_by_name outside the lock"
        self.calls.append(("find_one_by_name", name))
        return self.states.get(name)

    def persist(self, state):
        assert self.locked, "persist outside the lock"
        self.calls.append(("persist", state.name))
        self.persisted.append(state)
        self.states[state.name] = state

    def flush(self):
        assert self.locked, "flush outside the lock"
        self.calls.append("flush")
        if self.flush_error is not None:
            raise self.flush_error

    def delete_missing(self, keep_names):
        assert self.locked, "delete_missing outside the lock"
        keep = set(keep_names)
        doomed = [name for name in self.states if name not in keep]
        for name in doomed:
            del self.states[name]
        self.calls.append(("delete_missing", tuple(sorted(keep))))
        return len(doomed)

    def find_all(self):
        self.calls.append("find_all")
        return list(self.states.values())


def make_state(name, last_run=None):
    return CronJobState(name=name, last_run=last_run)


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def metrics():
    return CronMetrics()


@pytest.fixture
def engine(tmp_path):
    db_engine = make_engine(f"sqlite:///{tmp_path / 'cron.db'}")
    init_db(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def sql_store(engine):
    return SqlCronJobStore(engine=engine, lock_timeout=5)
