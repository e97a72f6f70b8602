"""create events table

Revision ID: 002
Revises: 001
Create Date: 2026-09-02
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("category", sa.String(30), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="upcoming"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_status_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_update_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('upcoming', 'ongoing', 'completed', 'cancelled')",
            name="ck_events_status",
        ),
        sa.CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_events_completed_at",
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_scheduled_at", "events", ["scheduled_at"])
    op.create_index("ix_events_status", "events", ["status"])
    op.create_index("ix_events_last_status_update", "events", ["last_status_update"])


def downgrade():
    op.drop_index("ix_events_last_status_update", table_name="events")
    op.drop_index("ix_events_status", table_name="events")
    op.drop_index("ix_events_scheduled_at", table_name="events")
    op.drop_index("ix_events_organizer_id", table_name="events")
    op.drop_index("ix_events_id", table_name="events")
    op.drop_table("events")
