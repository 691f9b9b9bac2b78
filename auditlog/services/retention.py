"""Retention pruning by age and by row count."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Select, delete, func, select
from sqlalchemy.orm import Session

from auditlog.models.meta import Meta
from auditlog.models.occurrence import Occurrence
from auditlog.services.archiving import ArchivingFlag
from auditlog.services.connection import ConnectionProvider, StoreHandle
from auditlog.services.health import is_healthy
from auditlog.services.hooks import ACTION_PRUNE, HookRegistry
from auditlog.services.options import (
    DEFAULT_PRUNING_DATE,
    OPT_PRUNING_DATE,
    OPT_PRUNING_DATE_ENABLED,
    OPT_PRUNING_LIMIT,
    OPT_PRUNING_LIMIT_ENABLED,
)
from auditlog.services.providers import SettingsProvider
from auditlog.services.tables import TableLifecycle, call_with_table_retry
from auditlog.utils.time import cutoff_timestamp, is_valid_duration, parse_duration, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    date_enabled: bool = False
    max_age: str = DEFAULT_PRUNING_DATE
    count_enabled: bool = False
    max_count: int = 0

    def __post_init__(self) -> None:
        if self.date_enabled:
            parse_duration(self.max_age)
        if self.count_enabled and self.max_count < 1:
            raise ValueError("max_count must be at least 1 when count-based retention is enabled")

    @property
    def enabled(self) -> bool:
        return self.date_enabled or self.count_enabled


def policy_from_settings(settings: SettingsProvider) -> RetentionPolicy:
    """Build the retention policy from the runtime options."""

    max_age = settings.get(OPT_PRUNING_DATE, DEFAULT_PRUNING_DATE)
    if not is_valid_duration(max_age):
        logger.warning("Invalid pruning date option, using default", extra={"value": max_age})
        max_age = DEFAULT_PRUNING_DATE
    return RetentionPolicy(
        date_enabled=settings.get_bool(OPT_PRUNING_DATE_ENABLED),
        max_age=max_age,
        count_enabled=settings.get_bool(OPT_PRUNING_LIMIT_ENABLED),
        max_count=max(int(settings.get(OPT_PRUNING_LIMIT, 1) or 1), 1),
    )


@dataclass(frozen=True)
class DeletionOutcome:
    deleted_count: int
    plan: str
    high_water_mark: int | None


@dataclass(frozen=True)
class PruneResult:
    deleted_count: int
    plan: str
    high_water_mark: int
    cutoff_timestamp: float | None
    limit: int | None
    store: str


def oldest_first_selection(cutoff: float | None, limit: int | None) -> Select:
    """Ids of the rows to prune, oldest ``created_on`` first."""

    stmt = select(Occurrence.id).order_by(Occurrence.created_on.asc(), Occurrence.id.asc())
    if cutoff is not None:
        stmt = stmt.where(Occurrence.created_on <= cutoff)
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def _render(session: Session, stmt) -> str:
    compiled = stmt.compile(dialect=session.get_bind().dialect, compile_kwargs={"literal_binds": True})
    return " ".join(str(compiled).split())


def delete_records(session: Session, *, cutoff: float | None, limit: int | None) -> DeletionOutcome:
    """Delete the selected occurrences and their metadata, metadata first.

    Both deletes are bounded by the highest selected id and restricted to the
    selection, so an older id with a newer ``created_on`` keeps its metadata.
    """

    selected = oldest_first_selection(cutoff, limit).subquery("selected")
    high_water_mark = session.scalar(select(func.max(selected.c.id)))
    if not high_water_mark:
        return DeletionOutcome(deleted_count=0, plan="", high_water_mark=None)

    delete_meta = (
        delete(Meta)
        .where(Meta.occurrence_id <= high_water_mark, Meta.occurrence_id.in_(select(selected.c.id)))
        .execution_options(synchronize_session=False)
    )
    delete_occurrences = (
        delete(Occurrence)
        .where(Occurrence.id <= high_water_mark, Occurrence.id.in_(select(selected.c.id)))
        .execution_options(synchronize_session=False)
    )
    session.execute(delete_meta)
    result = session.execute(delete_occurrences)
    plan = "; ".join([_render(session, delete_meta), _render(session, delete_occurrences)])
    return DeletionOutcome(deleted_count=int(result.rowcount or 0), plan=plan, high_water_mark=high_water_mark)


class RetentionPruner:
    """Applies a retention policy to the occurrence store."""

    def __init__(
        self,
        *,
        settings: SettingsProvider,
        connections: ConnectionProvider,
        archiving: ArchivingFlag,
        hooks: HookRegistry | None = None,
        tables: TableLifecycle | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._connections = connections
        self._archiving = archiving
        self._hooks = hooks or HookRegistry()
        self._tables = tables or TableLifecycle()
        self._clock = clock

    def prune(self, policy: RetentionPolicy | None = None) -> PruneResult | None:
        """Delete what the policy no longer retains.

        Every no-op returns ``None``: policy disabled, archiving in progress,
        store unreachable, row count at or below the ceiling, or zero rows
        deleted. ``None`` is therefore the "deleted_count = 0" result, and a
        returned ``PruneResult`` always has a positive ``deleted_count``.
        """

        if policy is None:
            policy = policy_from_settings(self._settings)
        if not policy.enabled:
            return None

        if self._archiving.is_in_progress():
            logger.info("Archiving in progress, pruning skipped")
            return None

        handle = self._active_store()
        if not is_healthy(handle):
            logger.warning("Store unreachable, pruning skipped", extra={"store": handle.name})
            return None

        total_count = self._with_tables(handle, lambda: self._count(handle))
        if policy.count_enabled and total_count < policy.max_count:
            return None

        cutoff = cutoff_timestamp(policy.max_age, self._clock()) if policy.date_enabled else None

        limit: int | None = None
        if policy.count_enabled:
            max_items = max(total_count - policy.max_count + 1, 0)
            if max_items - 1 == 0:
                return None
            limit = max_items

        outcome = self._with_tables(handle, lambda: self._delete(handle, cutoff, limit))
        if outcome.deleted_count == 0 or outcome.high_water_mark is None:
            return None

        result = PruneResult(
            deleted_count=outcome.deleted_count,
            plan=outcome.plan,
            high_water_mark=outcome.high_water_mark,
            cutoff_timestamp=cutoff,
            limit=limit,
            store=handle.name,
        )
        logger.info(
            "Retention pruning deleted events",
            extra={
                "deleted_count": result.deleted_count,
                "high_water_mark": result.high_water_mark,
                "store": result.store,
                "total_before": total_count,
            },
        )
        self._hooks.do_action(ACTION_PRUNE, result.deleted_count, result.plan)
        return result

    def _active_store(self) -> StoreHandle:
        if self._archiving.is_enabled():
            archive = self._connections.get_archive_connection()
            if archive is not None:
                return archive
            logger.warning("Archiving enabled without an archive database; pruning the primary store")
        return self._connections.get_events_connection()

    def _with_tables(self, handle: StoreHandle, operation):
        assert handle.engine is not None
        return call_with_table_retry(
            operation,
            engine=handle.engine,
            tables=[Occurrence.__table__, Meta.__table__],
            lifecycle=self._tables,
        )

    @staticmethod
    def _count(handle: StoreHandle) -> int:
        with handle.session() as session:
            return int(session.scalar(select(func.count()).select_from(Occurrence)) or 0)

    @staticmethod
    def _delete(handle: StoreHandle, cutoff: float | None, limit: int | None) -> DeletionOutcome:
        with handle.session() as session, session.begin():
            return delete_records(session, cutoff=cutoff, limit=limit)


__all__ = [
    "DeletionOutcome",
    "PruneResult",
    "RetentionPolicy",
    "RetentionPruner",
    "delete_records",
    "oldest_first_selection",
    "policy_from_settings",
]
