"""Manual triggers for the maintenance jobs."""
from fastapi import APIRouter, Depends

from auditlog.deps import get_event_logger, get_pruner
from auditlog.schemas.maintenance import DrainRead, PruneRead
from auditlog.services.event_logger import EventLogger
from auditlog.services.retention import RetentionPruner

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/prune", response_model=PruneRead)
def prune(pruner: RetentionPruner = Depends(get_pruner)) -> PruneRead:
    result = pruner.prune()
    if result is None:
        return PruneRead(pruned=False)
    return PruneRead(
        pruned=True,
        deleted_count=result.deleted_count,
        plan=result.plan,
        high_water_mark=result.high_water_mark,
    )


@router.post("/drain-buffer", response_model=DrainRead)
def drain_buffer(event_logger: EventLogger = Depends(get_event_logger)) -> DrainRead:
    report = event_logger.drain_buffer()
    return DrainRead(drained=report.drained, failed=report.failed, remaining=report.remaining)
