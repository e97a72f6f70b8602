"""create users table

Revision ID: 001
Revises:
Create Date: 2026-09-02
"""
from alembic import op
import sqlalchemy as sa

revision  = "001"
down_revision = None
branch_labels = None
depends_on    = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id",            sa.Integer(),               primary_key=True, autoincrement=True),
        sa.Column("name",          sa.String(255),             nullable=False),
        sa.Column("email",         sa.String(255),             nullable=False),
        sa.Column("password_hash", sa.Text(),                  nullable=False),
        sa.Column("role",          sa.String(20),              nullable=False, server_default="participant"),
        sa.Column("is_active",     sa.Boolean(),               nullable=False, server_default="true"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at",    sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_id",    "users", ["id"],    unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id",    table_name="users")
    op.drop_table("users")
