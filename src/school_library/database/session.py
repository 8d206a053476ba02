"""
Database session management for the School Library loan service.

This module provides connection management and session handling for SQLAlchemy.
For the loan subsystem, proper session management is critical for:

1. Thread Safety: REST and MCP requests run concurrently
2. Transaction Management: a loan and its stock reservation commit together
3. Connection Pooling: one connection per in-flight request
4. Error Recovery: storage failures surface as StorageError

SQLite notes:
- File databases run in WAL mode, so readers and the single writer never
  block each other
- Transactions begin DEFERRED; mutations call ``begin_write`` first, which
  issues ``BEGIN IMMEDIATE`` so concurrent writers queue on the database
  lock instead of failing on a SHARED -> RESERVED upgrade
- ``:memory:`` databases use StaticPool so every session sees the same data
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .exceptions import StorageError
from .schema import Base

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Seconds a SQLite connection waits for the database lock
SQLITE_LOCK_TIMEOUT = 30

# Execution option asking the SQLite begin hook for BEGIN IMMEDIATE
WRITE_LOCK_OPTION = "sqlite_write_lock"


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class DatabaseManager:
    """
    Manages database connections and sessions for the loan service.

    This class provides:
    - Lazily created engine with SQLite-specific locking setup
    - Session factory with explicit transactions
    - Schema creation for development and tests
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured database.
        """
        if database_url is None:
            config = get_config()
            if config.database_url:
                database_url = config.database_url
            else:
                db_path = config.database_path

                if not db_path.is_absolute():
                    db_path = Path.cwd() / db_path

                db_path.parent.mkdir(exist_ok=True, parents=True)

                database_url = f"sqlite:///{db_path}"
                logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite engines get foreign keys enabled, WAL journaling for files and
        driver-level transaction handling replaced by explicit ``BEGIN``.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                if _is_memory_sqlite(self.database_url):
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=False,
                    )
                else:
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={
                            "check_same_thread": False,
                            "timeout": SQLITE_LOCK_TIMEOUT,
                        },
                        echo=False,
                    )

                file_backed = not _is_memory_sqlite(self.database_url)

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    # Take transaction control away from pysqlite
                    dbapi_connection.isolation_level = None
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    if file_backed:
                        cursor.execute("PRAGMA journal_mode=WAL")
                    cursor.close()

                @event.listens_for(self._engine, "begin")
                def begin_transaction(conn):
                    if conn.get_execution_options().get(WRITE_LOCK_OPTION):
                        conn.exec_driver_sql("BEGIN IMMEDIATE")
                    else:
                        conn.exec_driver_sql("BEGIN")

            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """
        Create a new database session.

        Sessions should be used with ``session_scope`` or closed explicitly.
        """
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            service = LoanService(session)
            service.create_loan(request)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.debug("Rolling back database transaction", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Check the database answers a trivial query (used by health checks)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose the engine and forget the session factory."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def set_db_manager(manager: DatabaseManager | None) -> None:
    """Replace the global database manager (tests, embedding apps)."""
    global _db_manager  # noqa: PLW0603

    _db_manager = manager


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager for database sessions."""
    with get_db_manager().session_scope() as session:
        yield session


def begin_write(session: Session) -> None:
    """
    Open the session's transaction holding the database write lock.

    On SQLite this is ``BEGIN IMMEDIATE``; other databases ignore the option
    and rely on row locks. A session that already has a transaction open
    keeps it.
    """
    if session.in_transaction():
        return
    safe_query(
        session,
        lambda s: s.connection(execution_options={WRITE_LOCK_OPTION: True}),
        "Failed to start write transaction",
    )


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, turning driver failures into StorageError.

    Args:
        session: The database session
        operation: Description of the operation (for error messages)
    """
    try:
        session.commit()
    except Exception as e:
        session.rollback()
        raise StorageError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, turning driver failures into StorageError.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Message used for the raised StorageError
    """
    try:
        return query_func(session)
    except Exception as e:
        logger.exception("Query failed")
        raise StorageError(f"{error_msg}: Database query failed") from e
