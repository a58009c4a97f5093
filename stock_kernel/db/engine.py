"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory management,
    and transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py,
    db/immutability.py and db/triggers.py.  MUST NOT import from services/,
    selectors/, domain/, or outer layers (models are imported lazily by
    create_tables so Base.metadata is populated).

Invariants enforced:
    - No process-wide connection state: every ``Database`` owns its own
      engine and session factory, and is closed explicitly (``close()``
      or the context manager protocol).
    - PostgreSQL sessions run at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) on the material being written.
    - SQLite connections open every transaction with BEGIN IMMEDIATE, so
      writers on the same database file are serialized.

Failure modes:
    - RuntimeError if a session is requested after ``close()``.
    - OperationalError on deadlock during trigger installation (retried up
      to 3x).

Audit relevance:
    All ledger transactions flow through ``session_scope()``, which commits
    or rolls back the fact insert and the projection update as one unit.
"""

import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _install_sqlite_locking(engine: Engine) -> None:
    """
    Take over transaction control from the sqlite3 driver.

    The driver's implicit BEGIN is deferred, which lets two writers read
    the same stock and deadlock on upgrade.  BEGIN IMMEDIATE acquires the
    write lock up front.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    One database: engine, session factory and schema helpers.

    Lifecycle: construct (init) -> ``session_scope()`` (serve) -> ``close()``.

    Args:
        database_url: SQLAlchemy URL (``postgresql://...`` or
            ``sqlite:///path``).
        echo: If True, log all SQL statements.
        pool_size / max_overflow / pool_timeout / pool_recycle: PostgreSQL
            connection pool settings.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        sqlite_busy_timeout: int = 30,
    ):
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={
                    "check_same_thread": False,
                    "timeout": sqlite_busy_timeout,
                },
            )
            _install_sqlite_locking(self.engine)
        else:
            self.engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                isolation_level="READ COMMITTED",
            )

        self._session_factory: sessionmaker[Session] | None = sessionmaker(
            bind=self.engine, expire_on_commit=False
        )

        register_immutability_listeners()

        logger.info(
            "engine_initialized",
            extra={"dialect": self.dialect, "echo": echo},
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @property
    def is_postgres(self) -> bool:
        return self.dialect == "postgresql"

    def session(self) -> Session:
        """
        Get a new session instance.

        Raises:
            RuntimeError: If the database has been closed.
        """
        if self._session_factory is None:
            raise RuntimeError("Database is closed")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed, and the
            exception is re-raised to the caller.
        """
        session = self.session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.debug("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self, install_triggers: bool = True) -> None:
        """
        Create all tables and optionally install immutability triggers.

        For tests and bootstrap only; production schemas are managed by
        migrations outside this package.
        """
        from stock_kernel.db.base import Base
        from stock_kernel.db.triggers import install_immutability_triggers
        import stock_kernel.models  # noqa: F401  (populates Base.metadata)

        Base.metadata.create_all(self.engine)

        if not install_triggers:
            return

        max_retries = 3
        for attempt in range(max_retries):
            try:
                install_immutability_triggers(self.engine)
                break
            except OperationalError as exc:
                if "deadlock" in str(exc).lower() and attempt < max_retries - 1:
                    logger.warning(
                        "trigger_install_deadlock_retry",
                        extra={"attempt": attempt + 1, "max_retries": max_retries},
                    )
                    self.engine.dispose()
                    time.sleep(0.5 * (attempt + 1))
                else:
                    raise

    def drop_tables(self) -> None:
        """
        Drop all tables. Use with caution - primarily for testing.

        Triggers are dropped with their tables.
        """
        from stock_kernel.db.base import Base
        import stock_kernel.models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    def close(self) -> None:
        """Dispose the engine and release pooled connections."""
        if self._session_factory is None:
            return
        self._session_factory = None
        self.engine.dispose()
        logger.info("engine_closed", extra={"dialect": self.dialect})

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
