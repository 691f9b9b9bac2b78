"""Connection provider for the occurrence store.

The occurrence tables live in the local database unless an external database
is configured; pruning may additionally be redirected to an archive database.
Every handle is probed once when requested so that callers can decide between
a direct write and the buffer without catching connection errors themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from auditlog import db
from auditlog.config import Settings

logger = logging.getLogger(__name__)

STORE_LOCAL = "local"
STORE_EXTERNAL = "external"
STORE_ARCHIVE = "archive"


@dataclass(frozen=True)
class ExternalDatabaseConfig:
    url: str
    name: str = STORE_EXTERNAL


@dataclass
class StoreHandle:
    """A probed connection to one store.

    ``error`` carries the connect error when the probe failed; ``engine`` is
    ``None`` when the engine itself could not be built.
    """

    name: str
    engine: Engine | None
    error: BaseException | None = None
    _sessions: sessionmaker[Session] | None = field(default=None, repr=False)

    @property
    def external(self) -> bool:
        return self.name != STORE_LOCAL

    def session(self) -> Session:
        if self.engine is None:
            raise RuntimeError(f"Store {self.name!r} has no engine")
        if self._sessions is None:
            self._sessions = db.make_sessionmaker(self.engine)
        return self._sessions()


class ConnectionProvider:
    """Builds, caches and probes engines for the configured stores."""

    def __init__(self, settings: Settings, *, local_engine: Engine | None = None) -> None:
        self._settings = settings
        self._local_engine = local_engine
        self._engines: dict[str, Engine] = {}
        self._sessions: dict[str, sessionmaker[Session]] = {}

    def events_config(self) -> ExternalDatabaseConfig | None:
        """Return the external store config, or ``None`` when events stay local."""

        url = self._settings.external_database_url
        if url is None:
            return None
        return ExternalDatabaseConfig(url=url)

    def is_external(self) -> bool:
        return self.events_config() is not None

    def archive_config(self) -> ExternalDatabaseConfig | None:
        url = self._settings.archive_database_url
        if url is None:
            return None
        return ExternalDatabaseConfig(url=url, name=STORE_ARCHIVE)

    def get_connection(self, config: ExternalDatabaseConfig | None = None) -> StoreHandle:
        """Return a probed handle for ``config`` (``None`` means the local store)."""

        name = config.name if config is not None else STORE_LOCAL
        try:
            engine = self._engine_for(config)
        except (SQLAlchemyError, ImportError) as exc:
            logger.error("Unable to build engine", extra={"store": name, "error": str(exc)})
            return StoreHandle(name=name, engine=None, error=exc)

        handle = StoreHandle(name=name, engine=engine, _sessions=self._sessions.get(name))
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Store unreachable", extra={"store": name, "error": str(exc)})
            handle.error = exc
        return handle

    def get_events_connection(self) -> StoreHandle:
        return self.get_connection(self.events_config())

    def get_archive_connection(self) -> StoreHandle | None:
        config = self.archive_config()
        if config is None:
            return None
        return self.get_connection(config)

    def _engine_for(self, config: ExternalDatabaseConfig | None) -> Engine:
        if config is None:
            if self._local_engine is None:
                self._local_engine = db.get_engine()
            engine = self._local_engine
            name = STORE_LOCAL
        else:
            name = config.name
            engine = self._engines.get(config.url)
            if engine is None:
                engine = create_engine(
                    config.url,
                    future=True,
                    **db.engine_kwargs(config.url, self._settings.DB_CONNECT_TIMEOUT_SECONDS),
                )
                self._engines[config.url] = engine
        if name not in self._sessions:
            self._sessions[name] = db.make_sessionmaker(engine)
        return engine

    def dispose(self) -> None:
        """Dispose external and archive engines; the local engine belongs to ``auditlog.db``."""

        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()
        self._sessions.clear()


__all__ = [
    "ConnectionProvider",
    "ExternalDatabaseConfig",
    "StoreHandle",
    "STORE_ARCHIVE",
    "STORE_EXTERNAL",
    "STORE_LOCAL",
]
