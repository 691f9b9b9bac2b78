"""Buffered event model."""
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Double, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, _utcnow


class BufferedEvent(Base):
    """An event staged while the occurrence store could not be written.

    ``buffer_key`` derives from ``created_on``; a second event with the same
    key overwrites the first and bumps ``version``.
    """

    __tablename__ = "buffered_events"

    buffer_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    alert_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    site_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_on: Mapped[float] = mapped_column(Double, nullable=False)
    is_migrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
