"""Connection health check."""
from __future__ import annotations

from typing import Any


def is_healthy(connection: Any) -> bool:
    """Return False when ``connection`` is missing or reports a connect error.

    Pure inspection: never connects and never raises.
    """

    if connection is None:
        return False
    if getattr(connection, "error", None) is not None:
        return False
    return getattr(connection, "engine", None) is not None


def describe_store(connection: Any) -> str:
    """Return ``"ok"`` or ``"error"`` for status payloads."""

    return "ok" if is_healthy(connection) else "error"


__all__ = ["is_healthy", "describe_store"]
