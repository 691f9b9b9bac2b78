"""Initial audit log schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "occurrences",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("alert_id", sa.BigInteger(), nullable=False),
        sa.Column("created_on", sa.Double(), nullable=False),
        sa.Column("is_migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_occurrences_created_on", "occurrences", ["created_on"])
    op.create_index(
        "ix_occurrences_site_alert_created",
        "occurrences",
        ["site_id", "alert_id", "created_on"],
    )

    op.create_table(
        "metadata",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("occurrence_id", sa.BigInteger(), sa.ForeignKey("occurrences.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.UniqueConstraint("occurrence_id", "name", name="uq_metadata_occurrence_name"),
    )
    op.create_index("ix_metadata_occurrence_id", "metadata", ["occurrence_id"])

    op.create_table(
        "options",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=191), nullable=False, unique=True),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "buffered_events",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("buffer_key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("alert_id", sa.BigInteger(), nullable=False),
        sa.Column("site_id", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_on", sa.Double(), nullable=False),
        sa.Column("is_migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "scheduler_locks",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_table("buffered_events")
    op.drop_table("options")
    op.drop_index("ix_metadata_occurrence_id", table_name="metadata")
    op.drop_table("metadata")
    op.drop_index("ix_occurrences_site_alert_created", table_name="occurrences")
    op.drop_index("ix_occurrences_created_on", table_name="occurrences")
    op.drop_table("occurrences")
