"""SQLAlchemy 2.0 ORM models for the Instagram reply copilot.

Covers 10 tables:
  - accounts: users, user_settings, global_settings
  - inbox: inbound_messages, ai_draft_responses
  - knowledge: manual_corrections, media_library, interactions, user_guidelines
  - obs: generation_log

Tables stay in the default schema so the same metadata runs on PostgreSQL
(asyncpg) and on SQLite (aiosqlite, used by the test suite).
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    false,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Values used in CHECK constraints (mirrors the enums in schemas/)
# ---------------------------------------------------------------------------

_MESSAGE_STATUSES = ("pending", "approved", "rejected", "auto_sent")
_MESSAGE_TYPES = ("dm", "comment")
_CHANNEL_TYPES = ("public_comment", "private_dm")
_CORRECTION_SOURCES = ("approval_queue", "simulator", "promoted")
_GUIDELINE_CATEGORIES = ("tone", "content", "forbidden", "style", "general")
_OPERATION_MODES = ("manual", "semi_auto", "auto")


def _in_check(column: str, values: tuple, nullable: bool = False) -> str:
    clause = f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"
    if nullable:
        return f"{column} IS NULL OR {clause}"
    return clause


# ===========================================================================
# Accounts and settings
# ===========================================================================


class User(Base):
    """users — operator account and its linked Instagram business account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_account_id: Mapped[Optional[str]] = mapped_column(
        Text, unique=True, nullable=True
    )
    instagram_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    @property
    def is_connected(self) -> bool:
        return bool(self.instagram_access_token and self.instagram_account_id)


class UserSettings(Base):
    """user_settings — per-user overrides; NULL falls back to the global value."""

    __tablename__ = "user_settings"
    __table_args__ = (
        CheckConstraint(
            _in_check("operation_mode", _OPERATION_MODES, nullable=True),
            name="ck_user_settings_mode",
        ),
        CheckConstraint(
            "confidence_threshold IS NULL OR confidence_threshold BETWEEN 50 AND 100",
            name="ck_user_settings_threshold",
        ),
    )

    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    operation_mode: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence_threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    system_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_tone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class GlobalSetting(Base):
    """global_settings — key/value defaults shared by every user."""

    __tablename__ = "global_settings"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


# ===========================================================================
# Inbox
# ===========================================================================


class InboundMessage(Base):
    """inbound_messages — DMs and comments waiting for (or past) a reply."""

    __tablename__ = "inbound_messages"
    __table_args__ = (
        CheckConstraint(_in_check("status", _MESSAGE_STATUSES), name="ck_message_status"),
        CheckConstraint(_in_check("type", _MESSAGE_TYPES), name="ck_message_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    sender_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_avatar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_permalink: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_comment_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_comment_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_comment_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default="pending", server_default="pending"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    draft: Mapped[Optional["AiDraftResponse"]] = relationship(
        "AiDraftResponse",
        back_populates="message",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class AiDraftResponse(Base):
    """ai_draft_responses — the AI suggestion attached 1:1 to a message."""

    __tablename__ = "ai_draft_responses"
    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_draft_confidence_range",
        ),
        CheckConstraint(
            "feedback_status IS NULL OR feedback_status IN ('like', 'dislike')",
            name="ck_draft_feedback_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    message_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("inbound_messages.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    suggested_response: Mapped[str] = mapped_column(Text, nullable=False)
    final_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    was_edited: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    was_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    human_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feedback_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    message: Mapped["InboundMessage"] = relationship(
        "InboundMessage", back_populates="draft"
    )


# ===========================================================================
# Knowledge store (capped per user, oldest evicted first)
# ===========================================================================


class ManualCorrection(Base):
    """manual_corrections — golden Q/A pairs written by a human."""

    __tablename__ = "manual_corrections"
    __table_args__ = (
        CheckConstraint(_in_check("source", _CORRECTION_SOURCES), name="ck_correction_source"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(
        Text, nullable=False, default="approval_queue", server_default="approval_queue"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class MediaLibraryEntry(Base):
    """media_library — synced posts used as voice and context samples."""

    __tablename__ = "media_library"
    __table_args__ = (
        UniqueConstraint("user_id", "external_media_id", name="uq_media_user_external"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_media_id: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    permalink: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_transcription: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class InteractionEntry(Base):
    """interactions — past conversations, with the owner's reply when there was one."""

    __tablename__ = "interactions"
    __table_args__ = (
        CheckConstraint(_in_check("channel_type", _CHANNEL_TYPES), name="ck_interaction_channel"),
        UniqueConstraint("user_id", "external_id", name="uq_interaction_user_external"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    channel_type: Mapped[str] = mapped_column(Text, nullable=False)
    sender_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_message: Mapped[str] = mapped_column(Text, nullable=False)
    my_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interacted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class UserGuideline(Base):
    """user_guidelines — prioritized rules injected into every prompt (unbounded)."""

    __tablename__ = "user_guidelines"
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_guideline_priority"),
        CheckConstraint(_in_check("category", _GUIDELINE_CATEGORIES), name="ck_guideline_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    rule: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, server_default="3"
    )
    category: Mapped[str] = mapped_column(
        Text, nullable=False, default="general", server_default="general"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


# ===========================================================================
# Observability
# ===========================================================================


class GenerationLog(Base):
    """generation_log — one row per AI completion attempt."""

    __tablename__ = "generation_log"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    model_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Base",
    # accounts
    "User",
    "UserSettings",
    "GlobalSetting",
    # inbox
    "InboundMessage",
    "AiDraftResponse",
    # knowledge
    "ManualCorrection",
    "MediaLibraryEntry",
    "InteractionEntry",
    "UserGuideline",
    # obs
    "GenerationLog",
]
