"""Runtime option model."""
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, _utcnow


class Option(Base):
    """A persisted runtime option (buffer policy, retention, archiving flags)."""

    __tablename__ = "options"

    name: Mapped[str] = mapped_column(String(191), unique=True, nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
