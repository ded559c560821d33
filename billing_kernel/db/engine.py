"""
Module: billing_kernel.db.engine
Responsibility: Process-wide engine and session factory, plus the
    unit-of-work helper that owns commit and rollback for the services.
Architecture position: Kernel > DB.  Imports db/base.py (and models/ when
    creating tables); nothing from services/ or selectors/.

Backends:
    - PostgreSQL in deployment: pooled connections, pre-ping, READ COMMITTED.
      Invoice-number counters rely on SELECT ... FOR UPDATE.
    - SQLite for tests and local runs: one shared connection (StaticPool) so
      ``sqlite://`` keeps its in-memory data.  FOR UPDATE is a no-op there.

Failure modes:
    - RuntimeError from any accessor called before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_engine(url: str, echo: bool) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite opens transactions lazily and breaks SAVEPOINT; emit BEGIN ourselves.
    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    *,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    Calling it again replaces both; the previous engine is disposed.
    Pool arguments apply to server databases only.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    backend = url.get_backend_name()

    if _engine is not None:
        _engine.dispose()

    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"backend": backend, "database": url.database, "echo": echo},
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """New session from the process-wide factory.  The caller closes it."""
    return _require_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on clean exit, roll back on any exception.

    Services only flush; this is where their changes become durable::

        with session_scope() as session:
            InvoiceLedger(session).record_payment(invoice_id, org_id, amount)
    """
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


def create_tables() -> None:
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Test helper."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
