"""Error types and standardized error responses."""
from typing import Any


class AuditLogError(Exception):
    """Base class for audit log engine errors."""


class InvalidEventDataError(AuditLogError, ValueError):
    """Raised when event data cannot be persisted as metadata."""


class MetaValueError(InvalidEventDataError):
    """Raised when a metadata value is outside the supported value types."""


class SchemaMissingError(AuditLogError):
    """Raised when a table is still missing after one create-and-retry cycle."""

    def __init__(self, table: str, message: str | None = None) -> None:
        self.table = table
        super().__init__(message or f"Table {table!r} is missing and could not be created.")


class StoreUnavailableError(AuditLogError):
    """Raised when the occurrence store cannot be reached for a direct write."""


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload
