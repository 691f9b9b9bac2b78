"""Health check endpoint."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from auditlog.config import Settings, get_settings
from auditlog.core.runtime_state import is_scheduler_active, last_job_runs
from auditlog.deps import (
    get_archiving_flag,
    get_buffer_store,
    get_connection_provider,
    get_scheduler_lease,
)
from auditlog.services.archiving import ArchivingFlag
from auditlog.services.buffer import BufferStore
from auditlog.services.connection import ConnectionProvider
from auditlog.services.health import describe_store
from auditlog.services.scheduler_lock import SchedulerLease

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _buffer_size(buffer: BufferStore) -> int | None:
    try:
        return buffer.count()
    except Exception:  # noqa: BLE001
        logger.exception("Buffer size check failed")
        return None


def _archiving_in_progress(archiving: ArchivingFlag) -> bool | None:
    try:
        return archiving.is_in_progress()
    except Exception:  # noqa: BLE001
        logger.exception("Archiving flag check failed")
        return None


def _lock_status(lease: SchedulerLease) -> dict[str, object]:
    try:
        return lease.describe()
    except Exception:  # noqa: BLE001
        logger.exception("Scheduler lock check failed")
        return {"status": "unknown", "owner": None, "present": False}


@router.get("", summary="Health check")
def healthcheck(
    settings: Settings = Depends(get_settings),
    connections: ConnectionProvider = Depends(get_connection_provider),
    buffer: BufferStore = Depends(get_buffer_store),
    archiving: ArchivingFlag = Depends(get_archiving_flag),
    lease: SchedulerLease = Depends(get_scheduler_lease),
) -> dict[str, object]:
    """Return store reachability, buffer backlog and scheduler state."""

    events_store = describe_store(connections.get_events_connection())
    return {
        "status": "ok" if events_store == "ok" else "degraded",
        "events_store": events_store,
        "events_store_external": connections.is_external(),
        "buffer_size": _buffer_size(buffer),
        "archiving_in_progress": _archiving_in_progress(archiving),
        "scheduler_config_enabled": bool(settings.SCHEDULER_ENABLED),
        "scheduler_running": is_scheduler_active(),
        "scheduler_lock": _lock_status(lease),
        "last_job_runs": last_job_runs(),
    }
