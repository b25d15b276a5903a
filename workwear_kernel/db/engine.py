"""
Engine and session setup for the order store.

Production runs on PostgreSQL at READ COMMITTED.  The ledger increments
and approval writes get their guarantees from ``SELECT ... FOR UPDATE``,
conditional updates and version columns, not from the isolation level.

SQLite is used by the tests and for local runs.  It has no row locks, so
every SQLite transaction opens with ``BEGIN IMMEDIATE`` and takes the
database write lock up front; concurrent writers then queue instead of
failing halfway through.

Two ways in:

* ``build_engine(url)`` returns a configured engine and keeps no state.
  Tests and the concurrency harness use it.
* ``init_engine_from_url(url)`` builds one and registers it as the
  process engine behind ``get_session()`` and ``session_scope()``.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workwear_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_URLS = frozenset({"sqlite://", "sqlite:///:memory:"})


@dataclass(frozen=True)
class PoolOptions:
    """Connection pool sizing.  Ignored for SQLite."""

    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True


def build_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool: PoolOptions | None = None,
) -> Engine:
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo)
    return create_engine(
        database_url,
        echo=echo,
        isolation_level="READ COMMITTED",
        **asdict(pool or PoolOptions()),
    )


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    extra = {}
    if database_url in _IN_MEMORY_URLS:
        # every session must share the single in-memory database
        extra["poolclass"] = StaticPool
    engine = create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
        **extra,
    )

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself, pysqlite would defer it
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class _Registry:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool: PoolOptions | None = None,
) -> Engine:
    """
    Build an engine and make it the process engine.

    Calling again replaces the previous engine (after disposing it).
    Also switches on JSON logging if nothing else has.
    """
    reset_engine()
    engine = build_engine(database_url, echo=echo, pool=pool)
    _Registry.engine = engine
    _Registry.sessions = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name, "echo": echo})
    return engine


def get_session() -> Session:
    if _Registry.sessions is None:
        raise RuntimeError("No engine registered; call init_engine_from_url() first")
    return _Registry.sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit when the block finishes, roll back and re-raise when it fails."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every workwear table on ``engine`` (default: the process engine)."""
    from workwear_kernel.db.base import Base
    import workwear_kernel.models  # noqa: F401  registers the mappers

    target = engine or _Registry.engine
    if target is None:
        raise RuntimeError("No engine registered; call init_engine_from_url() first")
    Base.metadata.create_all(target)


def reset_engine() -> None:
    """Dispose and forget the process engine."""
    if _Registry.engine is not None:
        _Registry.engine.dispose()
    _Registry.engine = None
    _Registry.sessions = None


atexit.register(reset_engine)
