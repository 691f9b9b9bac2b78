"""Event schemas."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventCreate(BaseModel):
    alert_id: int
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: float | None = None
    site_id: int | None = None
    override_buffer: bool = False
    migrated: bool = False

    model_config = ConfigDict(extra="forbid")


class EventLogged(BaseModel):
    logged: bool
    buffered: bool
    occurrence_id: int | None = None


class OccurrenceRead(BaseModel):
    id: int
    alert_id: int
    site_id: int
    created_on: float
    is_migrated: bool
    meta: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)
