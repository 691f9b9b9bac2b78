"""In-process filters and actions.

Filters let extensions rewrite a value the engine is about to use (the event
timestamp, the site id). Actions notify listeners after something happened
(an event was logged, records were pruned). Both are synchronous; listener
failures are logged and never reach the caller.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count
from typing import Any

logger = logging.getLogger(__name__)

FILTER_TIMESTAMP = "timestamp"
FILTER_SITE_ID = "site_id"
ACTION_LOGGED_ALERT = "logged_alert"
ACTION_PRUNE = "prune"

DEFAULT_PRIORITY = 10

_sequence = count()


@dataclass(order=True)
class _Registration:
    priority: int
    sequence: int
    callback: Callable[..., Any] = field(compare=False)


class HookRegistry:
    """Registry of named filters and actions, run in priority order."""

    def __init__(self) -> None:
        self._filters: dict[str, list[_Registration]] = defaultdict(list)
        self._actions: dict[str, list[_Registration]] = defaultdict(list)

    @staticmethod
    def _register(table: dict[str, list[_Registration]], name: str, callback, priority: int) -> None:
        table[name].append(_Registration(priority, next(_sequence), callback))
        table[name].sort()

    @staticmethod
    def _unregister(table: dict[str, list[_Registration]], name: str, callback) -> bool:
        before = len(table[name])
        table[name] = [reg for reg in table[name] if reg.callback is not callback]
        return len(table[name]) != before

    def add_filter(self, name: str, callback: Callable[..., Any], priority: int = DEFAULT_PRIORITY) -> None:
        self._register(self._filters, name, callback, priority)

    def remove_filter(self, name: str, callback: Callable[..., Any]) -> bool:
        return self._unregister(self._filters, name, callback)

    def add_action(self, name: str, callback: Callable[..., Any], priority: int = DEFAULT_PRIORITY) -> None:
        self._register(self._actions, name, callback, priority)

    def remove_action(self, name: str, callback: Callable[..., Any]) -> bool:
        return self._unregister(self._actions, name, callback)

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Pass ``value`` through every filter registered under ``name``.

        A filter that raises is skipped and the value it received is kept.
        """

        for registration in list(self._filters.get(name, ())):
            try:
                value = registration.callback(value, *args)
            except Exception:  # noqa: BLE001
                logger.warning("Filter failed; keeping previous value", extra={"hook": name}, exc_info=True)
        return value

    def do_action(self, name: str, *args: Any) -> None:
        """Notify every listener of ``name``; listener errors are only logged."""

        for registration in list(self._actions.get(name, ())):
            try:
                registration.callback(*args)
            except Exception:  # noqa: BLE001
                logger.warning("Action listener failed", extra={"hook": name}, exc_info=True)

    def has_listeners(self, name: str) -> bool:
        return bool(self._actions.get(name)) or bool(self._filters.get(name))


__all__ = [
    "ACTION_LOGGED_ALERT",
    "ACTION_PRUNE",
    "FILTER_SITE_ID",
    "FILTER_TIMESTAMP",
    "HookRegistry",
]
