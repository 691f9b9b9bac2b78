"""Maintenance job schemas."""
from pydantic import BaseModel


class PruneRead(BaseModel):
    pruned: bool
    deleted_count: int = 0
    plan: str | None = None
    high_water_mark: int | None = None


class DrainRead(BaseModel):
    drained: int
    failed: int
    remaining: int
