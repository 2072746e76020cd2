"""Closed enumerations for message state, channel and knowledge sources."""
from enum import Enum


class MessageStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_SENT = "auto_sent"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class MessageType(str, Enum):
    DM = "dm"
    COMMENT = "comment"


class ChannelType(str, Enum):
    PUBLIC_COMMENT = "public_comment"
    PRIVATE_DM = "private_dm"


class CorrectionSource(str, Enum):
    APPROVAL_QUEUE = "approval_queue"
    SIMULATOR = "simulator"
    PROMOTED = "promoted"


class FeedbackStatus(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


class GuidelineCategory(str, Enum):
    TONE = "tone"
    CONTENT = "content"
    FORBIDDEN = "forbidden"
    STYLE = "style"
    GENERAL = "general"


class KnowledgeKind(str, Enum):
    MANUAL_CORRECTION = "manual_correction"
    MEDIA = "media"
    INTERACTION = "interaction"
