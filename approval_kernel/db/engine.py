"""
Module: approval_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    transactional scope utilities, and translation of driver failures into
    the kernel's StorageError.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, or outer layers
    (create_tables imports models so Base.metadata is complete).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with a pre-pinged QueuePool; SQLite
      (tests, single-branch installs) lets SQLAlchemy emit BEGIN so
      SAVEPOINTs work.
    - Every store failure surfaces as StorageError, never as an
      authorization error.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - StorageError wrapping any SQLAlchemyError raised inside
      translate_storage_errors().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from approval_kernel.exceptions import StorageError
from approval_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Preconditions: database_url is a valid SQLAlchemy URL (postgresql://...
        or sqlite:///...).  A second call overwrites the first.
    Postconditions: Module-level _engine and _SessionFactory are initialized.

    Args:
        database_url: Connection URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        _engine = create_engine(database_url, echo=echo)
        _enable_sqlite_transactions(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "echo": echo,
        },
    )

    return _engine


def _enable_sqlite_transactions(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly on pysqlite."""

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Useful when each concurrent caller needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed and the exception
        is re-raised (driver errors as StorageError).

    Usage:
        with session_scope() as session:
            service = ApprovalService(session, policy)
            service.approve(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        with translate_storage_errors("commit"):
            yield session
            session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


@contextmanager
def translate_storage_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise any SQLAlchemyError inside the block as StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "storage_failure",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        detail = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
        raise StorageError(operation, detail) from exc


def create_tables() -> None:
    """
    Create all tables defined in the models.

    Raises:
        RuntimeError: If engine is not initialized.
    """
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401  (registers tables)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        try:
            _engine.dispose()
        except SQLAlchemyError:
            logger.debug("engine_dispose_failed", exc_info=True)


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
