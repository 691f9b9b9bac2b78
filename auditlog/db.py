"""Database configuration and session management for the local store."""
from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from auditlog.config import get_settings
from auditlog.models.base import Base

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def engine_kwargs(url: str, connect_timeout: int | None = None) -> dict[str, object]:
    """Return driver specific ``create_engine`` keyword arguments."""

    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if connect_timeout is not None:
            connect_args["timeout"] = connect_timeout
    elif connect_timeout is not None:
        # Honoured by PyMySQL, mysqlclient and psycopg.
        connect_args["connect_timeout"] = connect_timeout
    kwargs: dict[str, object] = {"connect_args": connect_args}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return kwargs


def make_sessionmaker(bind: Engine) -> sessionmaker[Session]:
    """Return a session factory with the project-wide session options."""

    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_engine() -> Engine:
    """Initialise the local SQLAlchemy engine lazily."""

    global engine, SessionLocal
    if engine is None:
        settings = get_settings()
        engine = create_engine(
            settings.database_url,
            future=True,
            echo=False,
            **engine_kwargs(settings.database_url, settings.DB_CONNECT_TIMEOUT_SECONDS),
        )
        SessionLocal = make_sessionmaker(engine)
    return engine


def get_engine() -> Engine:
    """Return the local engine, creating it if necessary."""

    if engine is None:
        return init_engine()
    return engine


def get_sessionmaker() -> sessionmaker[Session]:
    """Return the local session factory, initialising the engine on demand."""

    if SessionLocal is None:
        init_engine()
    assert SessionLocal is not None  # for type-checkers
    return SessionLocal


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
    """Ensure SQLite enforces foreign key constraints."""

    if type(dbapi_connection).__module__.split(".")[0] not in {"sqlite3", "pysqlite2"}:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_all(bind: Engine | None = None) -> None:
    """Create all tables on ``bind`` (the local engine by default)."""

    Base.metadata.create_all(bind=bind or get_engine())


def close_engine() -> None:
    """Dispose of the local engine and reset the session factory."""

    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
        engine = None
        SessionLocal = None


__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "create_all",
    "engine_kwargs",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
    "make_sessionmaker",
    "close_engine",
]
