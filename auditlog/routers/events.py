"""Event ingestion and lookup endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status

from auditlog.deps import get_event_logger
from auditlog.schemas.event import EventCreate, EventLogged, OccurrenceRead
from auditlog.services.event_logger import EventLogger, OccurrenceRecord
from auditlog.utils.errors import InvalidEventDataError, StoreUnavailableError, error_response

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventLogged, status_code=status.HTTP_202_ACCEPTED)
def log_event(payload: EventCreate, event_logger: EventLogger = Depends(get_event_logger)) -> EventLogged:
    try:
        result = event_logger.log_event(
            payload.alert_id,
            payload.data,
            timestamp=payload.timestamp,
            site_id=payload.site_id,
            migrated=payload.migrated,
            override_buffer=payload.override_buffer,
        )
    except InvalidEventDataError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=error_response("INVALID_EVENT_DATA", str(exc)),
        ) from exc
    return EventLogged(logged=result.logged, buffered=result.buffered, occurrence_id=result.occurrence_id)


@router.get("/{occurrence_id}", response_model=OccurrenceRead)
def read_event(occurrence_id: int, event_logger: EventLogger = Depends(get_event_logger)) -> OccurrenceRecord:
    try:
        record = event_logger.get_occurrence(occurrence_id)
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("STORE_UNAVAILABLE", str(exc)),
        ) from exc
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("OCCURRENCE_NOT_FOUND", "Occurrence not found.", {"occurrence_id": occurrence_id}),
        )
    return record
