"""
Database connection and schema management.

Handles engine creation and schema initialization. There is no shared
session factory: the cron store opens one connection per table lock and
binds its session to it (see webcron.core.cron.storage).
"""
import logging
import threading

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from webcron.core.config import get_database_url, settings
from webcron.core.memory.models import Base


logger = logging.getLogger(__name__)


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints and set the default busy timeout in SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    # Set busy timeout to handle locks (30 seconds); the cron lock overrides it
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for url.

    SQLite gets a NullPool so every cron lock owns a fresh connection; other
    backends use the default pool with pre-ping.
    """
    if url.startswith("sqlite"):
        new_engine = create_engine(
            url,
            connect_args={
                "timeout": 30,  # 30 second timeout for database operations
            },
            poolclass=NullPool,
            echo=echo,
        )
        event.listen(new_engine, "connect", set_sqlite_pragma)
        return new_engine
    return create_engine(url, pool_pre_ping=True, echo=echo)


engine = make_engine(get_database_url(), echo=settings.database_echo)

# Global lock to ensure only one thread initializes the database at a time.
_init_lock = threading.Lock()


def init_db(bind: Engine = None) -> None:
    """Initialize database schema (create tables)."""
    with _init_lock:
        try:
            # Only creates missing tables, doesn't modify existing ones
            Base.metadata.create_all(bind=bind or engine)
            logger.info("Database schema initialized")
        except Exception as e:
            logger.error("Failed to initialize database: %s", e, exc_info=True)
            raise
