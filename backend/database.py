"""Database setup and session management."""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _enable_sqlite_foreign_keys(engine) -> None:
    """Register a ``connect`` listener that turns on SQLite FK enforcement.

    SQLite ignores ``ON DELETE`` clauses unless ``PRAGMA foreign_keys`` is
    set on every new connection.
    """

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _enable_sqlite_transactions(engine) -> None:
    """Make pysqlite emit a real ``BEGIN`` for every ORM transaction.

    The driver otherwise defers ``BEGIN`` until the first write and lets an
    outermost ``SAVEPOINT`` commit on its own, so savepoints and rollbacks
    would not behave as they do on other databases.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **engine_kwargs):
    """Create an engine for ``database_url`` with the project's SQLite tweaks."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,
        **engine_kwargs,
    )
    if database_url.startswith("sqlite"):
        _enable_sqlite_foreign_keys(engine)
        _enable_sqlite_transactions(engine)
    return engine


@lru_cache
def get_engine():
    """Get or create the database engine (cached)."""
    engine = build_engine(settings.DATABASE_URL)
    logger.info("Database engine created (%s)", engine.url.get_backend_name())
    return engine


def get_session_local():
    """Get a sessionmaker bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def init_db() -> None:
    """Create all tables that do not exist yet."""
    import models  # noqa: F401  (registers mappers on Base.metadata)

    Base.metadata.create_all(bind=get_engine())


def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Default: services ``flush()``, API layer ``commit()``
    - Exceptions that commit internally:
      - ``SyncOrchestrator.run()``: multi-phase pass; raw payloads and each
        phase transition are committed so they survive later failures
      - ``RelinkService.apply()``: one transaction around all pairs
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
