"""Lazy table creation and the single create-and-retry cycle."""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from sqlalchemy import Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from auditlog.utils.errors import SchemaMissingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MYSQL_NO_SUCH_TABLE = 1146


def is_missing_table_error(exc: BaseException) -> bool:
    """Return True when ``exc`` reports a missing table (SQLite, MySQL, PostgreSQL)."""

    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ())
    if args and args[0] == MYSQL_NO_SUCH_TABLE:
        return True
    if type(orig).__name__ == "UndefinedTable" or getattr(orig, "pgcode", None) == "42P01":
        return True
    message = str(orig).lower()
    return "no such table" in message or ("relation" in message and "does not exist" in message)


class TableLifecycle:
    """Creates tables on demand when a statement reports them missing."""

    def create_table_if_missing(self, engine: Engine, table: Table) -> bool:
        try:
            table.create(bind=engine, checkfirst=True)
        except SQLAlchemyError:
            logger.exception("Unable to create table", extra={"table": table.name})
            return False
        logger.warning("Created missing table", extra={"table": table.name})
        return True


def call_with_table_retry(
    operation: Callable[[], T],
    *,
    engine: Engine,
    tables: Sequence[Table],
    lifecycle: TableLifecycle,
) -> T:
    """Run ``operation``; on "table not found" create ``tables`` and retry exactly once."""

    try:
        return operation()
    except DBAPIError as exc:
        if not is_missing_table_error(exc):
            raise
        missing = ", ".join(table.name for table in tables)
        logger.warning("Table missing, creating it before a single retry", extra={"tables": missing})
        for table in tables:
            if not lifecycle.create_table_if_missing(engine, table):
                raise SchemaMissingError(table.name) from exc

    try:
        return operation()
    except DBAPIError as exc:
        if is_missing_table_error(exc):
            raise SchemaMissingError(missing) from exc
        raise


__all__ = ["TableLifecycle", "call_with_table_retry", "is_missing_table_error"]
