"""Event logger: decides between a direct write and the buffer.

The occurrence row and its metadata are written in two separate
transactions. A metadata failure leaves the occurrence in place: losing
details is tolerated, losing the event itself is not.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from auditlog.models.meta import Meta
from auditlog.models.occurrence import Occurrence
from auditlog.services.buffer import BufferedEntry, BufferStore, DrainReport, OccurrenceSnapshot
from auditlog.services.connection import ConnectionProvider, StoreHandle
from auditlog.services.health import is_healthy
from auditlog.services.hooks import (
    ACTION_LOGGED_ALERT,
    FILTER_SITE_ID,
    FILTER_TIMESTAMP,
    HookRegistry,
)
from auditlog.services.options import OPT_USE_BUFFER
from auditlog.services.providers import SettingsProvider, SiteIdentityProvider
from auditlog.services.tables import TableLifecycle, call_with_table_retry
from auditlog.utils.errors import AuditLogError, InvalidEventDataError, StoreUnavailableError
from auditlog.utils.serialization import decode_meta_value, encode_meta_map
from auditlog.utils.time import now_timestamp

logger = logging.getLogger(__name__)

# Codes below this were used by the retired PHP-error channel.
LEGACY_ALERT_THRESHOLD = 10
TIMESTAMP_KEY = "Timestamp"

STATUS_FILTERED = "filtered"
STATUS_WRITTEN = "written"
STATUS_BUFFERED = "buffered"
STATUS_DROPPED = "dropped"


@dataclass(frozen=True)
class LogResult:
    status: str
    occurrence_id: int | None = None
    created_on: float | None = None
    site_id: int | None = None

    @property
    def logged(self) -> bool:
        return self.status in {STATUS_WRITTEN, STATUS_BUFFERED}

    @property
    def buffered(self) -> bool:
        return self.status == STATUS_BUFFERED


@dataclass(frozen=True)
class OccurrenceRecord:
    id: int
    alert_id: int
    site_id: int
    created_on: float
    is_migrated: bool
    meta: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    """Persists audit events and their metadata."""

    def __init__(
        self,
        *,
        settings: SettingsProvider,
        connections: ConnectionProvider,
        buffer: BufferStore,
        sites: SiteIdentityProvider | None = None,
        hooks: HookRegistry | None = None,
        tables: TableLifecycle | None = None,
        metadata_retry_attempts: int = 0,
        clock: Callable[[], float] = now_timestamp,
    ) -> None:
        self._settings = settings
        self._connections = connections
        self._buffer = buffer
        self._sites = sites
        self._hooks = hooks or HookRegistry()
        self._tables = tables or TableLifecycle()
        self._metadata_retry_attempts = max(metadata_retry_attempts, 0)
        self._clock = clock

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    # -- ingestion -----------------------------------------------------------

    def log_event(
        self,
        alert_id: int,
        data: Mapping[str, Any] | None = None,
        timestamp: float | None = None,
        site_id: int | None = None,
        *,
        migrated: bool = False,
        override_buffer: bool = False,
    ) -> LogResult:
        """Log one event.

        ``timestamp`` is only for importing legacy records: it is used verbatim
        and skips the current-time logic. ``override_buffer`` forces a direct
        write attempt even when the external buffer policy is on.
        """

        if isinstance(alert_id, bool) or not isinstance(alert_id, int):
            raise InvalidEventDataError(f"alert_id must be an integer, got {alert_id!r}")
        if alert_id < LEGACY_ALERT_THRESHOLD:
            return LogResult(status=STATUS_FILTERED)

        event_data = self._copy_data(data)
        data_timestamp = event_data.pop(TIMESTAMP_KEY, None)
        encoded = encode_meta_map(event_data)

        created_on = self._resolve_timestamp(event_data, data_timestamp, timestamp)
        resolved_site_id = self._resolve_site_id(site_id, alert_id, event_data)
        snapshot = OccurrenceSnapshot(
            alert_id=alert_id,
            site_id=resolved_site_id,
            created_on=created_on,
            is_migrated=bool(migrated),
        )

        occurrence: Occurrence | None = None
        use_buffer = self._settings.get_bool(OPT_USE_BUFFER) and not override_buffer
        config = self._connections.events_config()
        if config is not None and use_buffer:
            result = self._to_buffer(snapshot, event_data, reason="external_buffer_policy")
        else:
            handle = self._connections.get_connection(config)
            if not is_healthy(handle):
                result = self._to_buffer(snapshot, event_data, reason="store_unreachable")
            else:
                try:
                    occurrence = self.write_direct(handle, snapshot, encoded)
                except OperationalError:
                    logger.warning("Direct write failed, buffering event", extra={"alert_id": alert_id}, exc_info=True)
                    result = self._to_buffer(snapshot, event_data, reason="write_failed")
                else:
                    result = LogResult(
                        status=STATUS_WRITTEN,
                        occurrence_id=occurrence.id,
                        created_on=created_on,
                        site_id=resolved_site_id,
                    )

        self._hooks.do_action(
            ACTION_LOGGED_ALERT, occurrence, alert_id, event_data, timestamp, resolved_site_id, bool(migrated)
        )
        return result

    @staticmethod
    def _copy_data(data: Mapping[str, Any] | None) -> dict[str, Any]:
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise InvalidEventDataError(f"Event data must be a mapping, got {type(data).__name__}")
        return dict(data)

    def _resolve_timestamp(
        self, data: dict[str, Any], data_timestamp: Any, explicit: float | None
    ) -> float:
        if explicit is not None:
            return float(explicit)
        timestamp = self._hooks.apply_filters(FILTER_TIMESTAMP, self._clock(), data)
        if data_timestamp is not None:
            # Set by the caller when the event was queued before being logged.
            try:
                return float(data_timestamp)
            except (TypeError, ValueError) as exc:
                raise InvalidEventDataError(f"Invalid Timestamp value: {data_timestamp!r}") from exc
        return float(timestamp)

    def _resolve_site_id(self, site_id: int | None, alert_id: int, data: dict[str, Any]) -> int:
        if site_id is None and self._sites is not None:
            site_id = self._sites.current_site_id()
        if site_id is None:
            site_id = 0
        site_id = self._hooks.apply_filters(FILTER_SITE_ID, site_id, alert_id, data)
        return int(site_id) if site_id is not None else 0

    def _to_buffer(self, snapshot: OccurrenceSnapshot, data: dict[str, Any], *, reason: str) -> LogResult:
        queued = self._buffer.enqueue(snapshot, data)
        log_extra = {"alert_id": snapshot.alert_id, "created_on": snapshot.created_on, "reason": reason}
        if queued:
            logger.warning("Event buffered", extra=log_extra)
            status = STATUS_BUFFERED
        else:
            logger.error("Event could not be buffered", extra=log_extra)
            status = STATUS_DROPPED
        return LogResult(status=status, created_on=snapshot.created_on, site_id=snapshot.site_id)

    # -- direct write --------------------------------------------------------

    def write_direct(
        self, handle: StoreHandle, snapshot: OccurrenceSnapshot, encoded_meta: Mapping[str, str]
    ) -> Occurrence:
        """Insert the occurrence, then its metadata.

        Not one transaction: when the metadata insert fails the occurrence stays
        and the failure is only logged.
        """

        assert handle.engine is not None
        occurrence = call_with_table_retry(
            lambda: self._insert_occurrence(handle, snapshot),
            engine=handle.engine,
            tables=[Occurrence.__table__],
            lifecycle=self._tables,
        )
        if encoded_meta:
            self._write_metadata(handle, occurrence.id, encoded_meta)
        return occurrence

    @staticmethod
    def _insert_occurrence(handle: StoreHandle, snapshot: OccurrenceSnapshot) -> Occurrence:
        occurrence = Occurrence(
            alert_id=snapshot.alert_id,
            site_id=snapshot.site_id,
            created_on=snapshot.created_on,
            is_migrated=snapshot.is_migrated,
        )
        with handle.session() as session, session.begin():
            session.add(occurrence)
        return occurrence

    def _write_metadata(self, handle: StoreHandle, occurrence_id: int, encoded_meta: Mapping[str, str]) -> bool:
        attempts = 1 + self._metadata_retry_attempts
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            retry=retry_if_exception_type((SQLAlchemyError, AuditLogError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            retrying(
                call_with_table_retry,
                lambda: self._store_metadata(handle, occurrence_id, encoded_meta),
                engine=handle.engine,
                tables=[Meta.__table__],
                lifecycle=self._tables,
            )
        except (SQLAlchemyError, AuditLogError):
            logger.error(
                "Metadata lost for occurrence",
                extra={"occurrence_id": occurrence_id, "names": sorted(encoded_meta), "attempts": attempts},
                exc_info=True,
            )
            return False
        return True

    @staticmethod
    def _store_metadata(handle: StoreHandle, occurrence_id: int, encoded_meta: Mapping[str, str]) -> None:
        rows = [
            {"occurrence_id": occurrence_id, "name": name, "value": value}
            for name, value in encoded_meta.items()
        ]
        with handle.session() as session, session.begin():
            session.execute(insert(Meta), rows)

    # -- buffer replay -------------------------------------------------------

    def replay(self, entry: BufferedEntry) -> int:
        """Write a buffered entry directly, keeping its original timestamp."""

        handle = self._connections.get_events_connection()
        if not is_healthy(handle):
            raise StoreUnavailableError(f"Store {handle.name!r} is unreachable")
        data = entry.data
        occurrence = self.write_direct(handle, entry.snapshot, encode_meta_map(data))
        self._hooks.do_action(
            ACTION_LOGGED_ALERT,
            occurrence,
            entry.snapshot.alert_id,
            data,
            entry.snapshot.created_on,
            entry.snapshot.site_id,
            entry.snapshot.is_migrated,
        )
        return occurrence.id

    def drain_buffer(self, writer: Callable[[BufferedEntry], Any] | None = None) -> DrainReport:
        """Replay buffered events in insertion order.

        Without ``writer`` the store is probed first and nothing is attempted
        while it is unreachable.
        """

        if writer is None:
            if not is_healthy(self._connections.get_events_connection()):
                logger.info("Store unreachable, buffer drain skipped")
                return DrainReport(remaining=self._buffer.count())
            writer = self.replay
        return self._buffer.drain(writer)

    # -- reading -------------------------------------------------------------

    def get_occurrence(self, occurrence_id: int) -> OccurrenceRecord | None:
        handle = self._connections.get_events_connection()
        if not is_healthy(handle):
            raise StoreUnavailableError(f"Store {handle.name!r} is unreachable")

        def _load() -> OccurrenceRecord | None:
            with handle.session() as session:
                occurrence = session.get(Occurrence, occurrence_id)
                if occurrence is None:
                    return None
                metas = session.scalars(
                    select(Meta).where(Meta.occurrence_id == occurrence_id).order_by(Meta.id)
                ).all()
                return OccurrenceRecord(
                    id=occurrence.id,
                    alert_id=occurrence.alert_id,
                    site_id=occurrence.site_id,
                    created_on=occurrence.created_on,
                    is_migrated=occurrence.is_migrated,
                    meta={meta.name: decode_meta_value(meta.value) for meta in metas},
                )

        return call_with_table_retry(
            _load,
            engine=handle.engine,
            tables=[Occurrence.__table__, Meta.__table__],
            lifecycle=self._tables,
        )


__all__ = [
    "EventLogger",
    "LEGACY_ALERT_THRESHOLD",
    "LogResult",
    "OccurrenceRecord",
    "STATUS_BUFFERED",
    "STATUS_DROPPED",
    "STATUS_FILTERED",
    "STATUS_WRITTEN",
    "TIMESTAMP_KEY",
]
