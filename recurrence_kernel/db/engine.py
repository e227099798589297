"""
Module: recurrence_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    commit-or-rollback session scope.  This is the single point of database
    connection configuration for the engine.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from stores/, services/ or domain/ (create_tables/drop_tables
    import models/ lazily so that Base.metadata is complete).

Invariants enforced:
    - PostgreSQL is the production backend (READ COMMITTED, pooled, pre-ping).
      SQLite is accepted for tests and local tooling; in-memory SQLite URLs
      share one connection through StaticPool.
    - On SQLite, pysqlite's implicit transaction handling is replaced by
      explicit BEGIN so SAVEPOINT (``Session.begin_nested()``) behaves, and
      foreign key enforcement is switched on for every connection.

Audit relevance:
    session_scope() gives atomic commit-or-rollback semantics for callers
    that run several entry-point calls with ``auto_commit=False``.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recurrence_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_MEMORY_URLS = ("sqlite://", "sqlite+pysqlite://")


def _is_memory_sqlite(database_url: str) -> bool:
    return ":memory:" in database_url or database_url in _MEMORY_URLS


def _install_sqlite_pragmas(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN, and turn foreign keys on."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        # ON DELETE SET NULL / CASCADE need foreign keys switched on
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an engine for ``database_url``.

    PostgreSQL URLs get a pooled READ COMMITTED engine.  SQLite URLs get
    explicit BEGIN plus foreign keys, and in-memory SQLite additionally a
    StaticPool so every session sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"echo": echo}
        if _is_memory_sqlite(database_url):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_engine(database_url, **kwargs)
        _install_sqlite_pragmas(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info("engine_built", extra={"dialect": engine.dialect.name})
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Sessions keep loaded attributes after commit; stores hand out DTOs anyway."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the
        exception is re-raised unchanged.

    Usage:
        with session_scope(factory) as session:
            rules = RecurringRuleService(
                build_recurrence_orchestrator(session), auto_commit=False
            )
            rules.create_rule(...)
    """
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _import_models() -> None:
    # Registers every table on Base.metadata.
    import recurrence_kernel.models  # noqa: F401


def create_tables(engine: Engine) -> None:
    """Create all tables defined in recurrence_kernel.models."""
    from recurrence_kernel.db.base import Base

    _import_models()
    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables.  Primarily for tests and local tooling."""
    from recurrence_kernel.db.base import Base

    _import_models()
    Base.metadata.drop_all(engine)
