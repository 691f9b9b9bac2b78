"""Durable fallback queue for events that could not be written directly."""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auditlog import db
from auditlog.models.buffered_event import BufferedEvent
from auditlog.services.tables import TableLifecycle, call_with_table_retry
from auditlog.utils.errors import InvalidEventDataError
from auditlog.utils.serialization import decode_meta_value, encode_meta_map

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OccurrenceSnapshot:
    """The occurrence fields known before the row exists."""

    alert_id: int
    site_id: int
    created_on: float
    is_migrated: bool = False


@dataclass(frozen=True)
class BufferedEntry:
    id: int
    key: str
    version: int
    snapshot: OccurrenceSnapshot
    payload: dict[str, str]

    @property
    def data(self) -> dict[str, Any]:
        """Decoded event data; raises ``MetaValueError`` for a corrupt payload."""

        return {name: decode_meta_value(text) for name, text in self.payload.items()}


@dataclass
class DrainReport:
    drained: int = 0
    failed: int = 0
    remaining: int = 0


def buffer_key(created_on: float) -> str:
    return f"{created_on:.6f}"


class BufferStore:
    """Keyed, ordered collection of buffered events in the local store."""

    def __init__(self, engine: Engine, *, tables: TableLifecycle | None = None) -> None:
        self._engine = engine
        self._sessions = db.make_sessionmaker(engine)
        self._tables = tables or TableLifecycle()

    def _with_table(self, operation: Callable[[], Any]) -> Any:
        return call_with_table_retry(
            operation,
            engine=self._engine,
            tables=[BufferedEvent.__table__],
            lifecycle=self._tables,
        )

    def enqueue(self, snapshot: Any, metadata: Any) -> bool:
        """Append an event; False when the snapshot or metadata is malformed.

        An entry with the same ``created_on`` key is overwritten (last write wins).
        """

        if not isinstance(snapshot, OccurrenceSnapshot) or not isinstance(metadata, Mapping):
            return False
        try:
            payload = encode_meta_map(metadata)
        except InvalidEventDataError:
            return False

        key = buffer_key(snapshot.created_on)
        values = {
            "alert_id": snapshot.alert_id,
            "site_id": snapshot.site_id,
            "created_on": snapshot.created_on,
            "is_migrated": snapshot.is_migrated,
            "payload": payload,
        }
        try:
            self._with_table(lambda: self._upsert(key, values))
        except SQLAlchemyError:
            logger.exception("Unable to buffer event", extra={"buffer_key": key, "alert_id": snapshot.alert_id})
            return False
        return True

    def _upsert(self, key: str, values: dict[str, Any]) -> None:
        session = self._sessions()
        try:
            try:
                with session.begin():
                    session.add(BufferedEvent(buffer_key=key, version=1, **values))
                return
            except IntegrityError:
                session.rollback()

            with session.begin():
                result = session.execute(
                    update(BufferedEvent)
                    .where(BufferedEvent.buffer_key == key)
                    .values(version=BufferedEvent.version + 1, **values)
                )
                if result.rowcount == 0:
                    # Drained between our insert and update.
                    session.add(BufferedEvent(buffer_key=key, version=1, **values))
            logger.info("Buffered event overwritten", extra={"buffer_key": key})
        finally:
            session.close()

    def entries(self, limit: int | None = None) -> list[BufferedEntry]:
        """Return entries in insertion order."""

        def _load() -> list[BufferedEvent]:
            with self._sessions() as session:
                stmt = select(BufferedEvent).order_by(BufferedEvent.id.asc())
                if limit is not None:
                    stmt = stmt.limit(limit)
                return list(session.scalars(stmt).all())

        return [
            BufferedEntry(
                id=row.id,
                key=row.buffer_key,
                version=row.version,
                snapshot=OccurrenceSnapshot(
                    alert_id=row.alert_id,
                    site_id=row.site_id,
                    created_on=row.created_on,
                    is_migrated=row.is_migrated,
                ),
                payload=dict(row.payload or {}),
            )
            for row in self._with_table(_load)
        ]

    def count(self) -> int:
        def _count() -> int:
            with self._sessions() as session:
                return int(session.scalar(select(func.count()).select_from(BufferedEvent)) or 0)

        return self._with_table(_count)

    def remove(self, entry: BufferedEntry) -> bool:
        """Delete ``entry`` unless it was overwritten since it was read."""

        with self._sessions() as session, session.begin():
            result = session.execute(
                delete(BufferedEvent).where(
                    BufferedEvent.id == entry.id,
                    BufferedEvent.version == entry.version,
                )
            )
            return result.rowcount == 1

    def drain(self, writer: Callable[[BufferedEntry], Any]) -> DrainReport:
        """Replay every entry through ``writer`` in insertion order.

        An entry is removed only after ``writer`` returns something other than
        ``False`` without raising. Failed entries stay queued and do not stop
        the remaining ones, including an entry whose removal fails after it
        was written.
        """

        report = DrainReport()
        for entry in self.entries():
            try:
                written = writer(entry)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Buffered event replay failed",
                    extra={"buffer_key": entry.key, "alert_id": entry.snapshot.alert_id},
                    exc_info=True,
                )
                report.failed += 1
                continue
            if written is False:
                report.failed += 1
                continue
            try:
                removed = self.remove(entry)
            except SQLAlchemyError:
                # Written but still queued; the next drain replays it again.
                logger.error(
                    "Buffered event written but not removed",
                    extra={"buffer_key": entry.key, "alert_id": entry.snapshot.alert_id},
                    exc_info=True,
                )
                report.failed += 1
                continue
            if not removed:
                logger.info("Buffered event changed during drain; kept", extra={"buffer_key": entry.key})
            report.drained += 1
        report.remaining = self.count()
        if report.drained or report.failed:
            logger.info(
                "Buffer drained",
                extra={"drained": report.drained, "failed": report.failed, "remaining": report.remaining},
            )
        return report


__all__ = ["BufferStore", "BufferedEntry", "DrainReport", "OccurrenceSnapshot", "buffer_key"]
