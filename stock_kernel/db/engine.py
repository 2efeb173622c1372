"""
Module: stock_kernel.db.engine
Responsibility: Engine and session factory lifecycle, plus the two
    transactional scopes the kernel uses: session_scope() for a whole unit
    of work and atomic() for one multi-write operation inside it.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  MUST NOT import services/, selectors/ or outer
    layers (create_tables imports models/ to populate metadata).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED; batches being mutated are
      locked with SELECT ... FOR UPDATE by the repositories.
    - atomic() is a SAVEPOINT: a failing operation leaves no partial
      batch or ledger writes behind.
    - On SQLite the engine emits BEGIN itself so SAVEPOINTs nest.

Failure modes:
    - RuntimeError from any accessor before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

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
    Create the kernel engine and session factory; replaces any previous one.

    ``sqlite://`` gives one shared in-memory connection (StaticPool), which
    is what the test suite runs on.  Any other URL gets a QueuePool sized by
    the pool arguments and READ COMMITTED isolation.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"
    options = (
        _sqlite_options()
        if is_sqlite
        else _pooled_options(pool_size, max_overflow, pool_pre_ping, pool_timeout, pool_recycle)
    )

    _engine = create_engine(url, echo=echo, **options)
    if is_sqlite:
        _install_sqlite_transaction_hooks(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from stock_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "database": _safe_url(url),
            "pool_size": None if is_sqlite else pool_size,
            "echo": echo,
        },
    )
    return _engine


def _sqlite_options() -> dict[str, Any]:
    return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}


def _pooled_options(
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_timeout: int,
    pool_recycle: int,
) -> dict[str, Any]:
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def _safe_url(url: URL) -> str:
    return url.render_as_string(hide_password=True)


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite's implicit transactions break SAVEPOINT; take over BEGIN
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _require_initialized() -> tuple[Engine, sessionmaker[Session]]:
    if _engine is None or _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine, _SessionFactory


def get_engine() -> Engine:
    return _require_initialized()[0]


def get_session_factory() -> sessionmaker[Session]:
    return _require_initialized()[1]


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on success, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            orchestrator = StockOrchestrator(session, auto_commit=False)
            orchestrator.approve_issue(issue_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


@contextmanager
def atomic(session: Session) -> Generator[Session, None, None]:
    """
    SAVEPOINT around one kernel operation.

    A raising body undoes every write made inside the block and the outer
    transaction stays usable.  Never commits.
    """
    with session.begin_nested():
        yield session


def create_tables() -> None:
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401  (populates Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
