"""
Cron run-state persistence backed by SQLAlchemy.

A store owns one connection per thread for the duration of the table lock:
lock_table() -> find_one_by_name()/persist() -> flush() -> unlock_table().
Everything read or written between lock and unlock goes through that
connection, so the lock covers the whole decision phase. Lock state is
thread-local: one store can be shared by concurrent passes (e.g. web requests
served from a threadpool), and each pass waits on the database lock.
"""
import logging
import threading
from typing import Iterable, List, Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from webcron.core.cron.errors import CronError
from webcron.core.memory.models import CronJobState
from webcron.core.memory.repository import CronJobStateRepository

logger = logging.getLogger(__name__)


class SqlCronJobStore:
    """Lockable run-state store used by the Cron coordinator."""

    def __init__(self, engine: Optional[Engine] = None, lock_timeout: Optional[float] = None):
        if engine is None or lock_timeout is None:
            from webcron.core.config import settings
            from webcron.core.memory import db

            engine = engine if engine is not None else db.engine
            lock_timeout = lock_timeout if lock_timeout is not None else settings.cron_lock_timeout
        self._engine = engine
        self.lock_timeout = lock_timeout
        self._local = threading.local()

    @property
    def _connection(self) -> Optional[Connection]:
        return getattr(self._local, "connection", None)

    @property
    def _session(self) -> Optional[Session]:
        return getattr(self._local, "session", None)

    @property
    def locked(self) -> bool:
        return self._connection is not None

    def lock_table(self) -> None:
        """Open a connection and take the exclusive cron table lock on it."""
        if self._connection is not None:
            raise CronError("The cron table is already locked by this thread")
        connection = self._engine.connect()
        try:
            CronJobStateRepository.lock_table(connection, self.lock_timeout)
        except BaseException:
            connection.close()
            raise
        self._local.connection = connection
        self._local.session = Session(bind=connection, autoflush=False, expire_on_commit=False)
        logger.debug("Locked cron table on %s", connection.dialect.name)

    def unlock_table(self) -> None:
        """Discard uncommitted changes, release the lock and close the connection."""
        session, connection = self._session, self._connection
        self._local.session = None
        self._local.connection = None
        if connection is None:
            return
        try:
            if session is not None:
                session.close()
            if connection.in_transaction():
                connection.rollback()
            CronJobStateRepository.unlock_table(connection)
            if connection.in_transaction():
                connection.commit()
        finally:
            connection.close()
            logger.debug("Unlocked cron table")

    def find_one_by_name(self, name: str) -> Optional[CronJobState]:
        return CronJobStateRepository.find_one_by_name(self._locked_session(), name)

    def persist(self, state: CronJobState) -> None:
        self._locked_session().add(state)

    def flush(self) -> None:
        """Write staged run states and commit them in one transaction."""
        session = self._locked_session()
        session.flush()
        self._connection.commit()

    def delete_missing(self, keep_names: Iterable[str]) -> int:
        """Delete run states of unknown jobs. Caller must hold the lock and flush."""
        return CronJobStateRepository.delete_missing(self._locked_session(), keep_names)

    def find_all(self) -> List[CronJobState]:
        """Read all run states without taking the lock."""
        with Session(bind=self._engine, expire_on_commit=False) as db:
            return CronJobStateRepository.list_all(db)

    def _locked_session(self) -> Session:
        if self._session is None:
            raise CronError("The cron table must be locked first")
        return self._session
