"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("AUDITLOG_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from auditlog import db, deps  # noqa: E402
from auditlog.config import Settings, get_settings  # noqa: E402
from auditlog.core.runtime_state import reset_runtime_state  # noqa: E402
from auditlog.main import app  # noqa: E402
from auditlog.models import Base, Meta, Occurrence  # noqa: E402
from auditlog.services.archiving import ArchivingFlag  # noqa: E402
from auditlog.services.buffer import BufferStore  # noqa: E402
from auditlog.services.connection import ConnectionProvider  # noqa: E402
from auditlog.services.event_logger import EventLogger  # noqa: E402
from auditlog.services.hooks import HookRegistry  # noqa: E402
from auditlog.services.options import OptionSettings  # noqa: E402
from auditlog.services.providers import StaticSiteProvider  # noqa: E402
from auditlog.services.retention import RetentionPruner  # noqa: E402
from auditlog.services.scheduler_lock import SchedulerLease  # noqa: E402

def make_memory_engine() -> Engine:
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


@pytest.fixture
def engine() -> Iterator[Engine]:
    test_engine = make_memory_engine()
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return db.make_sessionmaker(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, app_env="test", database_url="sqlite://")


@pytest.fixture
def connections(settings: Settings, engine: Engine) -> Iterator[ConnectionProvider]:
    provider = ConnectionProvider(settings, local_engine=engine)
    yield provider
    provider.dispose()


@pytest.fixture
def options(session_factory: sessionmaker[Session], settings: Settings) -> OptionSettings:
    return OptionSettings(session_factory, settings)


@pytest.fixture
def hooks() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def archiving(options: OptionSettings) -> ArchivingFlag:
    return ArchivingFlag(options)


@pytest.fixture
def buffer_store(engine: Engine) -> BufferStore:
    return BufferStore(engine)


@pytest.fixture
def event_logger(
    options: OptionSettings,
    connections: ConnectionProvider,
    buffer_store: BufferStore,
    hooks: HookRegistry,
) -> EventLogger:
    return EventLogger(
        settings=options,
        connections=connections,
        buffer=buffer_store,
        sites=StaticSiteProvider(0),
        hooks=hooks,
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def pruner(
    options: OptionSettings,
    connections: ConnectionProvider,
    archiving: ArchivingFlag,
    hooks: HookRegistry,
    fixed_now: datetime,
) -> RetentionPruner:
    return RetentionPruner(
        settings=options,
        connections=connections,
        archiving=archiving,
        hooks=hooks,
        clock=lambda: fixed_now,
    )


@pytest.fixture
def scheduler_lease(session_factory: sessionmaker[Session]) -> SchedulerLease:
    return SchedulerLease(session_factory)


@pytest.fixture
def insert_occurrences(session_factory: sessionmaker[Session]) -> Callable[..., list[int]]:
    """Factory inserting occurrences (each with one metadata row) at the given timestamps."""

    def _factory(timestamps: list[float], *, alert_id: int = 1000, site_id: int = 0) -> list[int]:
        with session_factory() as session, session.begin():
            rows = [Occurrence(alert_id=alert_id, site_id=site_id, created_on=ts) for ts in timestamps]
            session.add_all(rows)
            session.flush()
            session.add_all(
                Meta(occurrence_id=row.id, name="Username", value='{"t":"str","v":"admin"}') for row in rows
            )
            return [row.id for row in rows]

    return _factory


@pytest.fixture(autouse=True)
def reset_state() -> Iterator[None]:
    reset_runtime_state()
    yield
    reset_runtime_state()


@pytest.fixture
async def client(
    settings: Settings,
    connections: ConnectionProvider,
    buffer_store: BufferStore,
    archiving: ArchivingFlag,
    scheduler_lease: SchedulerLease,
    event_logger: EventLogger,
    pruner: RetentionPruner,
) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides.update(
        {
            get_settings: lambda: settings,
            deps.get_connection_provider: lambda: connections,
            deps.get_buffer_store: lambda: buffer_store,
            deps.get_archiving_flag: lambda: archiving,
            deps.get_scheduler_lease: lambda: scheduler_lease,
            deps.get_event_logger: lambda: event_logger,
            deps.get_pruner: lambda: pruner,
        }
    )
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as async_client:
            yield async_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
