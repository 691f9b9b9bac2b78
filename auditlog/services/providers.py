"""Interfaces of the collaborators the engine depends on."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SettingsProvider(Protocol):
    def get_bool(self, key: str) -> bool: ...

    def get(self, key: str, default: Any = None) -> Any: ...


@runtime_checkable
class SiteIdentityProvider(Protocol):
    def current_site_id(self) -> int | None: ...


class StaticSiteProvider:
    """Single-site deployments: every event belongs to the same site."""

    def __init__(self, site_id: int | None = 0) -> None:
        self._site_id = site_id

    def current_site_id(self) -> int | None:
        return self._site_id


class DictSettings:
    """In-memory settings provider, handy for scripts and tests."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def get_bool(self, key: str) -> bool:
        return as_bool(self.values.get(key))

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


def as_bool(value: Any) -> bool:
    """Interpret stored option values the way form posts and env vars spell them."""

    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "enable", "enabled"}
    return bool(value)


__all__ = ["DictSettings", "SettingsProvider", "SiteIdentityProvider", "StaticSiteProvider", "as_bool"]
