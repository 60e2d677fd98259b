"""
Database engine and session management for Coinfolio.
Uses SQLModel with SQLite (or any SQLAlchemy URL) for persistent storage.
Features Write-Ahead Logging (WAL) mode for improved concurrency on SQLite.
"""

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

# Writers wait this long (ms) for a competing lock before SQLite reports "database is locked"
SQLITE_BUSY_TIMEOUT_MS = 5000

# Global engine instance
_engine: Optional[object] = None


def get_engine():
    """Get or create the database engine (WAL mode enabled on SQLite)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.is_sqlite:
            connect_args["check_same_thread"] = False  # Allow use across threads
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            connect_args=connect_args,
        )
        if settings.is_sqlite:
            event.listen(_engine, "connect", _set_sqlite_pragmas)
            _enable_wal_mode()
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """busy_timeout is per connection, so apply it to every pooled connection."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _enable_wal_mode():
    """Enable SQLite WAL mode (persisted in the database file) for concurrent read/write."""
    if _engine is None:
        return

    try:
        with _engine.connect() as conn:
            mode = conn.exec_driver_sql("PRAGMA journal_mode=WAL").scalar()
            logger.info(f"SQLite journal mode: {mode}")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def reset_engine() -> None:
    """Dispose of the current engine so the next call rebuilds it from settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import Holding, Transaction  # noqa: F401 - registers tables

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")
