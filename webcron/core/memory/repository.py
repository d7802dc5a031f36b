"""
Repository layer for cron run-state rows.

Locking is dialect specific and always bound to one connection:
- sqlite: BEGIN EXCLUSIVE (transaction scoped)
- postgresql: LOCK TABLE ... IN EXCLUSIVE MODE (transaction scoped)
- mysql/mariadb: LOCK TABLES ... WRITE (released by UNLOCK TABLES)
"""
import logging
import math
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from webcron.core.cron.errors import CronError, LockTimeoutError
from webcron.core.memory.models import CronJobState


logger = logging.getLogger(__name__)

TABLE_NAME = CronJobState.__tablename__

# lock_not_available (PostgreSQL), ER_LOCK_WAIT_TIMEOUT (MySQL)
PG_LOCK_NOT_AVAILABLE = "55P03"
MYSQL_LOCK_WAIT_TIMEOUT = 1205


def require_active_session(db: Session) -> None:
    """Raise if session is closed; prevents use-after-close."""
    if not db.is_active:
        raise RuntimeError("Session already closed; do not use the cron session after unlock.")


def is_lock_contention(dialect: str, error: OperationalError) -> bool:
    """Tell whether error means the lock was held elsewhere, as opposed to a broken database."""
    orig = error.orig
    if dialect == "sqlite":
        message = str(orig).lower()
        return "locked" in message or "busy" in message
    if dialect == "postgresql":
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        return code == PG_LOCK_NOT_AVAILABLE or "lock timeout" in str(orig).lower()
    if dialect in ("mysql", "mariadb"):
        args = getattr(orig, "args", ())
        return bool(args) and args[0] == MYSQL_LOCK_WAIT_TIMEOUT
    return False


class CronJobStateRepository:
    """Repository for cron job run states."""

    @staticmethod
    def lock_table(connection: Connection, timeout: float) -> None:
        """Take an exclusive lock on the cron table, waiting at most timeout seconds."""
        dialect = connection.dialect.name
        try:
            if dialect == "sqlite":
                connection.exec_driver_sql(f"PRAGMA busy_timeout = {int(timeout * 1000)}")
                connection.exec_driver_sql("BEGIN EXCLUSIVE")
            elif dialect == "postgresql":
                connection.exec_driver_sql(f"SET LOCAL lock_timeout = '{int(timeout * 1000)}ms'")
                connection.exec_driver_sql(f"LOCK TABLE {TABLE_NAME} IN EXCLUSIVE MODE")
            elif dialect in ("mysql", "mariadb"):
                # lock_wait_timeout is whole seconds, minimum 1
                connection.exec_driver_sql(f"SET SESSION lock_wait_timeout = {max(1, math.ceil(timeout))}")
                connection.exec_driver_sql(f"LOCK TABLES {TABLE_NAME} WRITE")
            else:
                raise CronError(f"Locking the cron table is not supported on {dialect}")
        except OperationalError as e:
            if not is_lock_contention(dialect, e):
                raise
            logger.warning("Could not lock %s: %s", TABLE_NAME, e)
            raise LockTimeoutError(timeout) from e

    @staticmethod
    def unlock_table(connection: Connection) -> None:
        """Release a lock taken by lock_table. The transaction must already be ended."""
        if connection.dialect.name in ("mysql", "mariadb"):
            connection.exec_driver_sql("UNLOCK TABLES")

    @staticmethod
    def find_one_by_name(db: Session, name: str) -> Optional[CronJobState]:
        """Return the run state for name, if any."""
        require_active_session(db)
        return db.execute(select(CronJobState).where(CronJobState.name == name)).scalar_one_or_none()

    @staticmethod
    def list_all(db: Session) -> List[CronJobState]:
        """Return all run states ordered by name."""
        return list(db.execute(select(CronJobState).order_by(CronJobState.name)).scalars())

    @staticmethod
    def delete_missing(db: Session, keep_names: Iterable[str]) -> int:
        """Delete run states whose name is not in keep_names. Returns number deleted."""
        require_active_session(db)
        keep_set = set(keep_names)
        stmt = delete(CronJobState)
        if keep_set:
            stmt = stmt.where(CronJobState.name.notin_(keep_set))
        result = db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0
