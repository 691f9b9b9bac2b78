"""Background maintenance jobs run by the scheduler."""
from __future__ import annotations

import logging

from auditlog import deps
from auditlog.core.runtime_state import record_job_run
from auditlog.services.buffer import DrainReport
from auditlog.services.retention import PruneResult
from auditlog.utils.time import utcnow

logger = logging.getLogger(__name__)


def prune_once() -> PruneResult | None:
    """Apply the configured retention policy once."""

    result = deps.get_pruner().prune()
    record_job_run(
        "retention-prune",
        at=utcnow().isoformat(),
        deleted_count=result.deleted_count if result else 0,
    )
    return result


def drain_buffer_once() -> DrainReport:
    """Replay buffered events into the occurrence store once."""

    report = deps.get_event_logger().drain_buffer()
    record_job_run(
        "buffer-drain",
        at=utcnow().isoformat(),
        drained=report.drained,
        failed=report.failed,
        remaining=report.remaining,
    )
    return report


def refresh_scheduler_lease() -> None:
    deps.get_scheduler_lease().refresh()
