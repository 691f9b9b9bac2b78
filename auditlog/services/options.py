"""Runtime options persisted in the local ``options`` table."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from auditlog.config import Settings
from auditlog.models.option import Option
from auditlog.services.providers import as_bool
from auditlog.utils.time import is_valid_duration

logger = logging.getLogger(__name__)

OPT_USE_BUFFER = "adapter-use-buffer"
OPT_PRUNING_DATE_ENABLED = "pruning-date-e"
OPT_PRUNING_DATE = "pruning-date"
OPT_PRUNING_LIMIT_ENABLED = "pruning-limit-e"
OPT_PRUNING_LIMIT = "pruning-limit"
OPT_ARCHIVING_ENABLED = "archiving-e"
OPT_ARCHIVING_STARTED = "archiving-cron-started"

DEFAULT_PRUNING_DATE = "6 months"

_MISSING = object()


class OptionSettings:
    """Settings provider backed by the ``options`` table.

    Options that were never written fall back to the environment defaults in
    :class:`auditlog.config.Settings`.
    """

    def __init__(self, session_factory: sessionmaker[Session], settings: Settings) -> None:
        self._session_factory = session_factory
        self._settings = settings

    def _defaults(self) -> dict[str, Any]:
        s = self._settings
        return {
            OPT_USE_BUFFER: s.USE_EXTERNAL_BUFFER,
            OPT_PRUNING_DATE_ENABLED: s.PRUNING_DATE_ENABLED,
            OPT_PRUNING_DATE: s.PRUNING_DATE,
            OPT_PRUNING_LIMIT_ENABLED: s.PRUNING_LIMIT_ENABLED,
            OPT_PRUNING_LIMIT: s.PRUNING_LIMIT,
            OPT_ARCHIVING_ENABLED: False,
            OPT_ARCHIVING_STARTED: False,
        }

    def _load(self, key: str) -> Any:
        with self._session_factory() as session:
            option = session.scalars(select(Option).where(Option.name == key)).first()
            return _MISSING if option is None else option.value

    def get(self, key: str, default: Any = None) -> Any:
        value = self._load(key)
        if value is _MISSING:
            return self._defaults().get(key, default)
        return value

    def get_bool(self, key: str) -> bool:
        return as_bool(self.get(key, False))

    def set(self, key: str, value: Any) -> None:
        if key == OPT_PRUNING_LIMIT:
            value = max(int(value), 1)
        session = self._session_factory()
        try:
            with session.begin():
                option = session.scalars(select(Option).where(Option.name == key)).first()
                if option is None:
                    session.add(Option(name=key, value=value))
                else:
                    option.value = value
        except IntegrityError:
            # Another process created the option first; overwrite it.
            session.rollback()
            with session.begin():
                option = session.scalars(select(Option).where(Option.name == key)).one()
                option.value = value
        finally:
            session.close()

    def delete(self, key: str) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(Option).where(Option.name == key))

    def get_pruning_date(self) -> str:
        value = self.get(OPT_PRUNING_DATE, DEFAULT_PRUNING_DATE)
        if not is_valid_duration(value):
            logger.warning("Invalid pruning date option, using default", extra={"value": value})
            return DEFAULT_PRUNING_DATE
        return value

    def get_pruning_limit(self) -> int:
        try:
            return max(int(self.get(OPT_PRUNING_LIMIT, self._settings.PRUNING_LIMIT)), 1)
        except (TypeError, ValueError):
            return max(self._settings.PRUNING_LIMIT, 1)


__all__ = [
    "DEFAULT_PRUNING_DATE",
    "OPT_ARCHIVING_ENABLED",
    "OPT_ARCHIVING_STARTED",
    "OPT_PRUNING_DATE",
    "OPT_PRUNING_DATE_ENABLED",
    "OPT_PRUNING_LIMIT",
    "OPT_PRUNING_LIMIT_ENABLED",
    "OPT_USE_BUFFER",
    "OptionSettings",
]
