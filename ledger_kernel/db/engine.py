"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory and the
    transactional scope helper.  Single point of database configuration.
Architecture position: Kernel > DB.  May import db/base.py.  create_tables()
    imports the model registries inline so metadata is complete.

Invariants enforced:
    - Services never commit.  session_scope() is the only place a unit of
      work is committed or rolled back.
    - SQLite connections run with foreign keys on and with transaction
      control handed to SQLAlchemy so SAVEPOINTs behave (the pysqlite
      driver otherwise opens and commits transactions on its own).

Failure modes:
    - RuntimeError if get_engine/get_session is called before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_handling(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Initialize the engine and session factory from a database URL.

    PostgreSQL gets a pooled READ COMMITTED engine; row locks
    (SELECT ... FOR UPDATE) and conditional updates provide the stronger
    guarantees where posting needs them.  ``sqlite://`` URLs get a single
    shared connection, which is what the test suite uses.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_handling(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Transactional scope around a series of ledger operations.

    Commits on normal exit, rolls back and re-raises on any exception::

        with session_scope() as session:
            machine = VoucherStateMachine(session, clock)
            machine.post(voucher_id, company_id, actor_id)
    """
    session = get_session()
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


def _import_kernel_models() -> None:
    import ledger_kernel.models  # noqa: F401


def create_tables() -> None:
    """
    Create every table registered on Base.metadata.

    Kernel models are imported here.  Business modules register their own
    tables; ledger_modules._orm_registry.create_all_tables() builds the
    complete schema.
    """
    from ledger_kernel.db.base import Base

    _import_kernel_models()
    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every registered table.  Tests only."""
    from ledger_kernel.db.base import Base

    _import_kernel_models()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
