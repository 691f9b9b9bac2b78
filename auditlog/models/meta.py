"""Occurrence metadata model."""
from sqlalchemy import BigInteger, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Meta(Base):
    """A named value attached to an occurrence.

    ``value`` holds the tagged encoding produced by
    :func:`auditlog.utils.serialization.encode_meta_value`.
    """

    __tablename__ = "metadata"
    __table_args__ = (
        UniqueConstraint("occurrence_id", "name", name="uq_metadata_occurrence_name"),
    )

    occurrence_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("occurrences.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
