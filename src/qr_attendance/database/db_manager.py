"""
Database Manager for QR Attendance
==================================
Handles database connection, initialization, and session management.

Features:
- SQLite by default, any SQLAlchemy URL supported
- Automatic table creation
- Default configuration seeding
- Transaction scope with guaranteed commit/rollback
- Serialized write transactions on SQLite (BEGIN IMMEDIATE)
"""

import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .. import config
from .models import (
    Base, SystemConfig, Course, Student, ClassSession, Attendance, Analytics,
    DEFAULT_CONFIG, UNIQUE_SCAN_INDEX_NAME
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """
    Raised when the underlying store fails (constraint violation, lost
    connection, lock timeout). The transaction has been rolled back before
    this propagates.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class DatabaseManager:
    """
    Manages database connections and provides session context.

    Usage:
        db = DatabaseManager()
        with db.transaction() as session:
            session.add(Course(class_id="C101", course_name="Database Systems"))
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        echo: bool = False,
        database_url: Optional[str] = None,
        enforce_unique_scans: bool = True,
        busy_timeout: Optional[float] = None
    ):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file. Defaults to config.DATABASE_PATH
            echo: If True, log all SQL statements (useful for debugging)
            database_url: Full SQLAlchemy URL; takes precedence over db_path
            enforce_unique_scans: Keep the unique (student_id, session_id) index on
                attendance. Set False to open a store holding imported data that
                still has duplicates, so CleanupService can repair it.
            busy_timeout: Seconds a SQLite writer waits for the lock
        """
        self.db_path = Path(db_path) if db_path else config.DATABASE_PATH
        self.database_url = database_url
        self.echo = echo
        self.enforce_unique_scans = enforce_unique_scans
        self.busy_timeout = busy_timeout if busy_timeout is not None else config.BUSY_TIMEOUT_SECONDS
        self.engine = None
        self.SessionLocal = None
        self._initialized = False
        self._init_error: Optional[BaseException] = None

    @property
    def url(self) -> str:
        if self.database_url:
            return self.database_url
        if str(self.db_path) == ":memory:":
            return "sqlite://"
        return f"sqlite:///{self.db_path}"

    def initialize(self) -> bool:
        """
        Initialize database connection and create tables.

        Returns:
            True if initialization successful, False otherwise
        """
        try:
            self.engine = self._create_engine()

            self.SessionLocal = sessionmaker(
                autoflush=False,
                expire_on_commit=False,
                bind=self.engine
            )

            Base.metadata.create_all(bind=self.engine)
            self._sync_scan_index()
            logger.info(f"Database initialized at: {self.url}")

            self._initialized = True
            self._init_error = None

            self._seed_default_config()
            return True

        except (SQLAlchemyError, OSError, StoreError) as e:
            logger.error(f"Failed to initialize database: {e}")
            self._init_error = e
            self._initialized = False
            return False

    def _create_engine(self):
        if self.database_url:
            engine = create_engine(self.database_url, echo=self.echo)
        else:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # check_same_thread=False: sessions are used from worker threads.
            # In-memory databases only exist on one connection, so pin it.
            extra = {"poolclass": StaticPool} if str(self.db_path) == ":memory:" else {}
            engine = create_engine(
                self.url,
                echo=self.echo,
                connect_args={"check_same_thread": False, "timeout": self.busy_timeout},
                **extra
            )

        if engine.dialect.name == "sqlite":
            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                # Transactions are started by the "begin" hook below
                dbapi_connection.isolation_level = None
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

            @event.listens_for(engine, "begin")
            def begin_immediate(conn):
                # Take the write lock up front so duplicate-check-then-insert
                # cannot interleave between two writers.
                conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    def _sync_scan_index(self):
        """Create or drop the unique (student_id, session_id) attendance index."""
        scan_index = next(
            index for index in Attendance.__table__.indexes
            if index.name == UNIQUE_SCAN_INDEX_NAME
        )
        if self.enforce_unique_scans:
            # Fails if an older store still holds duplicates; open it with
            # enforce_unique_scans=False and run CleanupService.clean() first.
            scan_index.create(bind=self.engine, checkfirst=True)
        else:
            scan_index.drop(bind=self.engine, checkfirst=True)
            logger.warning("Unique scan index disabled: duplicate attendance rows are possible")

    def _seed_default_config(self):
        """Insert default configuration values if not present."""
        with self.transaction() as session:
            for key, (value, description) in DEFAULT_CONFIG.items():
                existing = session.get(SystemConfig, key)
                if not existing:
                    session.add(SystemConfig(key=key, value=value, description=description))
                    logger.debug(f"Added default config: {key}={value}")
        logger.info("Default configuration seeded")

    def _ensure_initialized(self):
        if not self._initialized and not self.initialize():
            raise StoreError(
                f"Database unavailable: {self._init_error}", cause=self._init_error
            )

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.
        Nothing is committed unless the caller commits.

        Yields:
            SQLAlchemy Session object
        """
        self._ensure_initialized()

        session = self.SessionLocal()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise StoreError(f"Database operation failed: {e}", cause=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Run a unit of work atomically.

        Commits when the block exits normally, rolls back on any exception.
        Store failures surface as StoreError.

        Usage:
            with db.transaction() as session:
                session.add(obj)
        """
        with self.get_session() as session:
            yield session
            session.commit()

    def get_config(self, key: str, default: str = None) -> Optional[str]:
        """
        Get a configuration value by key.

        Args:
            key: Configuration key name
            default: Default value if key not found

        Returns:
            Configuration value as string
        """
        with self.get_session() as session:
            config_row = session.get(SystemConfig, key)
            return config_row.value if config_row else default

    def get_config_int(self, key: str, default: int = 0) -> int:
        """Get config value as integer."""
        value = self.get_config(key)
        try:
            return int(value) if value else default
        except ValueError:
            logger.warning(f"Config {key}={value!r} is not an integer, using {default}")
            return default

    def set_config(self, key: str, value: str, description: str = None):
        """
        Set a configuration value.

        Args:
            key: Configuration key name
            value: Configuration value
            description: Optional description
        """
        with self.transaction() as session:
            config_row = session.get(SystemConfig, key)
            if config_row:
                config_row.value = value
                config_row.updated_at = datetime.utcnow()
                if description:
                    config_row.description = description
            else:
                session.add(SystemConfig(key=key, value=value, description=description))
        logger.info(f"Config updated: {key}={value}")

    def get_stats(self) -> dict:
        """
        Get database statistics.

        Returns:
            Dictionary with row counts and status info
        """
        with self.get_session() as session:
            return {
                "database_url": self.url,
                "classes": self._count(session, Course),
                "students": self._count(session, Student),
                "sessions": self._count(session, ClassSession),
                "attendance_rows": self._count(session, Attendance),
                "analytics_snapshots": self._count(session, Analytics),
                "unique_scans_enforced": self.enforce_unique_scans,
                "initialized": self._initialized
            }

    @staticmethod
    def _count(session: Session, model) -> int:
        return session.execute(select(func.count()).select_from(model)).scalar_one()

    def close(self):
        """Close database connection."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connection closed")
        self._initialized = False


# Global singleton instance
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    Get the global database manager instance.
    Creates and initializes if not already done.

    Returns:
        DatabaseManager singleton instance
    """
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url=config.DATABASE_URL, echo=config.SQL_ECHO)
        _db_manager.initialize()

    return _db_manager


def reset_db_manager():
    """Reset the global database manager (for testing)."""
    global _db_manager
    if _db_manager:
        _db_manager.close()
    _db_manager = None
