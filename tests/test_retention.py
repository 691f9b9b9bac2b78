from datetime import UTC, datetime, timedelta

import pytest
from dateutil.relativedelta import relativedelta
from sqlalchemy import event, func, select

from auditlog.models import Meta, Occurrence
from auditlog.services.hooks import ACTION_PRUNE
from auditlog.services.options import (
    OPT_PRUNING_DATE,
    OPT_PRUNING_DATE_ENABLED,
    OPT_PRUNING_LIMIT,
    OPT_PRUNING_LIMIT_ENABLED,
)
from auditlog.services.retention import RetentionPolicy, policy_from_settings

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
OLD = (NOW - timedelta(days=400)).timestamp()
RECENT = (NOW - timedelta(days=1)).timestamp()


@pytest.fixture
def fixed_now() -> datetime:
    return NOW


def _counts(db_session) -> tuple[int, int]:
    occurrences = db_session.scalar(select(func.count()).select_from(Occurrence))
    metas = db_session.scalar(select(func.count()).select_from(Meta))
    return occurrences, metas


def test_disabled_policy_is_noop(pruner, insert_occurrences, db_session):
    insert_occurrences([OLD, OLD + 1])

    assert pruner.prune(RetentionPolicy()) is None
    assert _counts(db_session) == (2, 2)


def test_count_policy_at_ceiling_is_noop(pruner, insert_occurrences, db_session):
    insert_occurrences([OLD + i for i in range(10)])

    result = pruner.prune(RetentionPolicy(count_enabled=True, max_count=10))

    assert result is None
    assert _counts(db_session) == (10, 10)


def test_count_policy_below_ceiling_is_noop(pruner, insert_occurrences, db_session):
    insert_occurrences([OLD + i for i in range(5)])

    assert pruner.prune(RetentionPolicy(count_enabled=True, max_count=10)) is None
    assert _counts(db_session) == (5, 5)


def test_count_policy_deletes_oldest(pruner, insert_occurrences, db_session):
    # Inserted out of timestamp order: the selection follows created_on, not id.
    ids = insert_occurrences([RECENT, OLD + 3, OLD + 1, OLD + 2, RECENT + 1])

    result = pruner.prune(RetentionPolicy(count_enabled=True, max_count=3))

    assert result.deleted_count == 3
    remaining = db_session.scalars(select(Occurrence.id).order_by(Occurrence.id)).all()
    assert result.high_water_mark == ids[3]
    assert remaining == [ids[0], ids[4]]
    owners = db_session.scalars(select(Meta.occurrence_id).order_by(Meta.occurrence_id)).all()
    assert owners == remaining


def test_date_policy_deletes_rows_older_than_cutoff(pruner, insert_occurrences, db_session):
    insert_occurrences([OLD, OLD + 1, RECENT])

    result = pruner.prune(RetentionPolicy(date_enabled=True, max_age="6 months"))

    assert result.deleted_count == 2
    assert result.cutoff_timestamp == pytest.approx((NOW - relativedelta(months=6)).timestamp())
    assert _counts(db_session) == (1, 1)


def test_combined_policy_is_bounded_by_smaller_constraint(pruner, insert_occurrences, db_session):
    ids = insert_occurrences([OLD + i for i in range(60)] + [RECENT + i for i in range(40)])

    # max_items = 100 - 81 + 1 = 20 rows, fewer than the 60 old ones.
    result = pruner.prune(
        RetentionPolicy(date_enabled=True, max_age="6 months", count_enabled=True, max_count=81)
    )

    assert result.deleted_count == 20
    assert result.limit == 20
    assert result.high_water_mark == ids[19]
    remaining = db_session.scalars(select(Occurrence.id).order_by(Occurrence.id)).all()
    assert remaining == ids[20:]


def test_combined_policy_bounded_by_cutoff(pruner, insert_occurrences, db_session):
    insert_occurrences([OLD + i for i in range(5)] + [RECENT + i for i in range(45)])

    result = pruner.prune(
        RetentionPolicy(date_enabled=True, max_age="6 months", count_enabled=True, max_count=21)
    )

    assert result.deleted_count == 5
    assert _counts(db_session) == (45, 45)


def test_metadata_deleted_before_occurrences(pruner, engine, insert_occurrences, db_session):
    insert_occurrences([OLD + i for i in range(10)])
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("DELETE"):
            statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    try:
        result = pruner.prune(
            RetentionPolicy(date_enabled=True, max_age="6 months", count_enabled=True, max_count=5)
        )
    finally:
        event.remove(engine, "before_cursor_execute", _record)

    assert result.deleted_count == 6
    assert len(statements) == 2
    assert "metadata" in statements[0]
    assert "occurrences" in statements[1] and "metadata" not in statements[1]

    orphans = db_session.scalar(
        select(func.count())
        .select_from(Meta)
        .where(~Meta.occurrence_id.in_(select(Occurrence.id)))
    )
    assert orphans == 0
    assert _counts(db_session) == (4, 4)


def test_prune_result_plan_and_action(pruner, hooks, insert_occurrences):
    insert_occurrences([OLD, OLD + 1])
    received = []
    hooks.add_action(ACTION_PRUNE, lambda count, plan: received.append((count, plan)))

    result = pruner.prune(RetentionPolicy(date_enabled=True, max_age="1 year"))

    assert received == [(2, result.plan)]
    assert "DELETE FROM metadata" in result.plan
    assert "DELETE FROM occurrences" in result.plan


def test_nothing_to_delete_emits_nothing(pruner, hooks, insert_occurrences):
    insert_occurrences([RECENT])
    received = []
    hooks.add_action(ACTION_PRUNE, lambda *args: received.append(args))

    assert pruner.prune(RetentionPolicy(date_enabled=True, max_age="6 months")) is None
    assert received == []


def test_archiving_in_progress_skips_pruning(pruner, archiving, insert_occurrences, db_session):
    insert_occurrences([OLD])
    archiving.mark_started()

    assert pruner.prune(RetentionPolicy(date_enabled=True, max_age="6 months")) is None
    assert _counts(db_session) == (1, 1)


def test_policy_from_options(options):
    options.set(OPT_PRUNING_DATE_ENABLED, True)
    options.set(OPT_PRUNING_DATE, "30 days")
    options.set(OPT_PRUNING_LIMIT_ENABLED, "1")
    options.set(OPT_PRUNING_LIMIT, 0)

    policy = policy_from_settings(options)

    assert policy == RetentionPolicy(date_enabled=True, max_age="30 days", count_enabled=True, max_count=1)


def test_policy_from_options_falls_back_on_bad_duration(options):
    options.set(OPT_PRUNING_DATE_ENABLED, True)
    options.set(OPT_PRUNING_DATE, "whenever")

    assert policy_from_settings(options).max_age == "6 months"


def test_prune_uses_stored_options(pruner, options, insert_occurrences, db_session):
    insert_occurrences([OLD, RECENT])
    options.set(OPT_PRUNING_DATE_ENABLED, True)

    result = pruner.prune()

    assert result.deleted_count == 1
    assert _counts(db_session) == (1, 1)


def test_policy_validation():
    with pytest.raises(ValueError):
        RetentionPolicy(date_enabled=True, max_age="soon")
    with pytest.raises(ValueError):
        RetentionPolicy(count_enabled=True, max_count=0)


def test_metadata_below_mark_outside_selection_survives(pruner, insert_occurrences, db_session):
    # The newest row has the lowest id, below the high-water mark of the selection.
    ids = insert_occurrences([RECENT + 10, OLD, OLD + 1, RECENT])

    result = pruner.prune(RetentionPolicy(date_enabled=True, max_age="6 months"))

    assert result.deleted_count == 2
    assert result.high_water_mark == ids[2]
    survivors = db_session.scalars(select(Occurrence.id).order_by(Occurrence.id)).all()
    owners = db_session.scalars(select(Meta.occurrence_id).order_by(Meta.occurrence_id)).all()
    assert survivors == [ids[0], ids[3]]
    assert owners == survivors
