"""Process-wide wiring of the engine components.

FastAPI routes receive these through ``Depends``; the scheduler jobs call
them directly. Tests replace them with ``app.dependency_overrides``.
"""
from __future__ import annotations

from auditlog import db
from auditlog.config import get_settings
from auditlog.services.archiving import ArchivingFlag
from auditlog.services.buffer import BufferStore
from auditlog.services.connection import ConnectionProvider
from auditlog.services.event_logger import EventLogger
from auditlog.services.hooks import HookRegistry
from auditlog.services.options import OptionSettings
from auditlog.services.providers import StaticSiteProvider
from auditlog.services.retention import RetentionPruner
from auditlog.services.scheduler_lock import SchedulerLease
from auditlog.services.tables import TableLifecycle

_hooks = HookRegistry()
_tables = TableLifecycle()
_connections: ConnectionProvider | None = None


def get_hooks() -> HookRegistry:
    return _hooks


def get_connection_provider() -> ConnectionProvider:
    global _connections
    if _connections is None:
        _connections = ConnectionProvider(get_settings(), local_engine=db.get_engine())
    return _connections


def get_option_settings() -> OptionSettings:
    return OptionSettings(db.get_sessionmaker(), get_settings())


def get_archiving_flag() -> ArchivingFlag:
    return ArchivingFlag(get_option_settings())


def get_buffer_store() -> BufferStore:
    return BufferStore(db.get_engine(), tables=_tables)


def get_scheduler_lease() -> SchedulerLease:
    return SchedulerLease(db.get_sessionmaker())


def get_event_logger() -> EventLogger:
    settings = get_settings()
    return EventLogger(
        settings=get_option_settings(),
        connections=get_connection_provider(),
        buffer=get_buffer_store(),
        sites=StaticSiteProvider(settings.DEFAULT_SITE_ID),
        hooks=_hooks,
        tables=_tables,
        metadata_retry_attempts=settings.METADATA_RETRY_ATTEMPTS,
    )


def get_pruner() -> RetentionPruner:
    options = get_option_settings()
    return RetentionPruner(
        settings=options,
        connections=get_connection_provider(),
        archiving=ArchivingFlag(options),
        hooks=_hooks,
        tables=_tables,
    )


def close_connections() -> None:
    global _connections
    if _connections is not None:
        _connections.dispose()
        _connections = None


__all__ = [
    "close_connections",
    "get_archiving_flag",
    "get_buffer_store",
    "get_connection_provider",
    "get_event_logger",
    "get_hooks",
    "get_option_settings",
    "get_pruner",
    "get_scheduler_lease",
]
