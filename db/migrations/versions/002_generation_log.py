"""Add generation_log for AI completion attempts.

Revision ID: 002
Revises: 001
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "generation_log",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=True),
        sa.Column("message_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("purpose", sa.Text, nullable=False),
        sa.Column("model_used", sa.Text, nullable=True),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("error_code", sa.Text, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_generation_log_user_created", "generation_log", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_generation_log_user_created", table_name="generation_log")
    op.drop_table("generation_log")
