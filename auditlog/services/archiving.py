"""Cooperative "archiving in progress" flag.

The flag is an option row, not a lock. Two processes can both read "not
started" and proceed; pruning only promises to stay out of the way of an
archival run that has already marked itself started.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from auditlog.services.options import OPT_ARCHIVING_ENABLED, OPT_ARCHIVING_STARTED

logger = logging.getLogger(__name__)


class WritableSettings(Protocol):
    def get_bool(self, key: str) -> bool: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class ArchivingFlag:
    def __init__(self, options: WritableSettings) -> None:
        self._options = options

    def is_enabled(self) -> bool:
        return self._options.get_bool(OPT_ARCHIVING_ENABLED)

    def is_in_progress(self) -> bool:
        return self._options.get_bool(OPT_ARCHIVING_STARTED)

    def mark_started(self) -> None:
        self._options.set(OPT_ARCHIVING_STARTED, True)

    def mark_finished(self) -> None:
        self._options.delete(OPT_ARCHIVING_STARTED)

    @contextmanager
    def running(self) -> Iterator[bool]:
        """Mark an archival run for the duration of the block.

        Yields False without touching the flag when another run is marked.
        """

        if self.is_in_progress():
            logger.info("Archiving already marked as running")
            yield False
            return
        self.mark_started()
        try:
            yield True
        finally:
            self.mark_finished()


__all__ = ["ArchivingFlag"]
