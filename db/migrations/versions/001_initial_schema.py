"""Initial schema: accounts, inbox and knowledge tables.

Revision ID: 001
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ─── Accounts ────────────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("instagram_account_id", sa.Text, nullable=True),
        sa.Column("instagram_username", sa.Text, nullable=True),
        sa.Column("instagram_access_token", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("instagram_account_id", name="uq_user_instagram_account"),
    )

    op.create_table(
        "user_settings",
        sa.Column("user_id", sa.Text, primary_key=True),
        sa.Column("operation_mode", sa.Text, nullable=True),
        sa.Column("confidence_threshold", sa.Integer, nullable=True),
        sa.Column("system_prompt", sa.Text, nullable=True),
        sa.Column("ai_tone", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "operation_mode IS NULL OR operation_mode IN ('manual', 'semi_auto', 'auto')",
            name="ck_user_settings_mode",
        ),
        sa.CheckConstraint(
            "confidence_threshold IS NULL OR confidence_threshold BETWEEN 50 AND 100",
            name="ck_user_settings_threshold",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_settings_user", ondelete="CASCADE"),
    )

    op.create_table(
        "global_settings",
        sa.Column("key", sa.Text, primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # ─── Inbox ───────────────────────────────────────────────────────────────

    op.create_table(
        "inbound_messages",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("external_id", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("sender_id", sa.Text, nullable=True),
        sa.Column("sender_name", sa.Text, nullable=True),
        sa.Column("sender_username", sa.Text, nullable=True),
        sa.Column("sender_avatar", sa.Text, nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("media_url", sa.Text, nullable=True),
        sa.Column("media_type", sa.Text, nullable=True),
        sa.Column("post_id", sa.Text, nullable=True),
        sa.Column("post_permalink", sa.Text, nullable=True),
        sa.Column("post_caption", sa.Text, nullable=True),
        sa.Column("post_thumbnail_url", sa.Text, nullable=True),
        sa.Column("parent_comment_id", sa.Text, nullable=True),
        sa.Column("parent_comment_text", sa.Text, nullable=True),
        sa.Column("parent_comment_username", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'auto_sent')",
            name="ck_message_status",
        ),
        sa.CheckConstraint("type IN ('dm', 'comment')", name="ck_message_type"),
        sa.UniqueConstraint("external_id", name="uq_message_external_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_message_user", ondelete="CASCADE"),
    )
    op.create_index("ix_inbound_messages_user_id", "inbound_messages", ["user_id"])
    op.create_index("ix_inbound_messages_user_status", "inbound_messages", ["user_id", "status"])

    op.create_table(
        "ai_draft_responses",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("message_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("suggested_response", sa.Text, nullable=False),
        sa.Column("final_response", sa.Text, nullable=True),
        sa.Column("confidence_score", sa.Float, nullable=False),
        sa.Column("reasoning", sa.Text, nullable=True),
        sa.Column("was_edited", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("was_approved", sa.Boolean, nullable=True),
        sa.Column("human_feedback", sa.Text, nullable=True),
        sa.Column("feedback_status", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_draft_confidence_range",
        ),
        sa.CheckConstraint(
            "feedback_status IS NULL OR feedback_status IN ('like', 'dislike')",
            name="ck_draft_feedback_status",
        ),
        sa.UniqueConstraint("message_id", name="uq_draft_message"),
        sa.ForeignKeyConstraint(
            ["message_id"], ["inbound_messages.id"], name="fk_draft_message", ondelete="CASCADE"
        ),
    )

    # ─── Knowledge store ─────────────────────────────────────────────────────

    op.create_table(
        "manual_corrections",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("question", sa.Text, nullable=False),
        sa.Column("answer", sa.Text, nullable=False),
        sa.Column("source", sa.Text, nullable=False, server_default="approval_queue"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "source IN ('approval_queue', 'simulator', 'promoted')",
            name="ck_correction_source",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_correction_user", ondelete="CASCADE"),
    )
    op.create_index("ix_manual_corrections_user_created", "manual_corrections", ["user_id", "created_at"])

    op.create_table(
        "media_library",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("external_media_id", sa.Text, nullable=False),
        sa.Column("caption", sa.Text, nullable=True),
        sa.Column("media_type", sa.Text, nullable=True),
        sa.Column("media_url", sa.Text, nullable=True),
        sa.Column("thumbnail_url", sa.Text, nullable=True),
        sa.Column("permalink", sa.Text, nullable=True),
        sa.Column("video_transcription", sa.Text, nullable=True),
        sa.Column("image_description", sa.Text, nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "external_media_id", name="uq_media_user_external"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_media_user", ondelete="CASCADE"),
    )
    op.create_index("ix_media_library_user_synced", "media_library", ["user_id", "synced_at"])

    op.create_table(
        "interactions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("external_id", sa.Text, nullable=True),
        sa.Column("channel_type", sa.Text, nullable=False),
        sa.Column("sender_name", sa.Text, nullable=True),
        sa.Column("sender_username", sa.Text, nullable=True),
        sa.Column("user_message", sa.Text, nullable=False),
        sa.Column("my_response", sa.Text, nullable=True),
        sa.Column("post_context", sa.Text, nullable=True),
        sa.Column("interacted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "channel_type IN ('public_comment', 'private_dm')",
            name="ck_interaction_channel",
        ),
        sa.UniqueConstraint("user_id", "external_id", name="uq_interaction_user_external"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_interaction_user", ondelete="CASCADE"),
    )
    op.create_index("ix_interactions_user_interacted", "interactions", ["user_id", "interacted_at"])

    op.create_table(
        "user_guidelines",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=True),
        sa.Column("rule", sa.Text, nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="3"),
        sa.Column("category", sa.Text, nullable=False, server_default="general"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_guideline_priority"),
        sa.CheckConstraint(
            "category IN ('tone', 'content', 'forbidden', 'style', 'general')",
            name="ck_guideline_category",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_guideline_user", ondelete="CASCADE"),
    )
    op.create_index("ix_user_guidelines_user_id", "user_guidelines", ["user_id"])


def downgrade() -> None:
    op.drop_table("user_guidelines")
    op.drop_table("interactions")
    op.drop_table("media_library")
    op.drop_table("manual_corrections")
    op.drop_table("ai_draft_responses")
    op.drop_table("inbound_messages")
    op.drop_table("global_settings")
    op.drop_table("user_settings")
    op.drop_table("users")
