"""Occurrence model."""
from sqlalchemy import BigInteger, Boolean, Double, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Occurrence(Base):
    """One logged audit event. Rows are append-only; only pruning removes them."""

    __tablename__ = "occurrences"
    __table_args__ = (
        Index("ix_occurrences_created_on", "created_on"),
        Index("ix_occurrences_site_alert_created", "site_id", "alert_id", "created_on"),
    )

    site_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    alert_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Unix timestamp with microseconds; events within one second must keep their order.
    created_on: Mapped[float] = mapped_column(Double, nullable=False)
    is_migrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
