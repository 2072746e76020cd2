from .messages import (
    MessageStatus,
    MessageType,
    ChannelType,
    CorrectionSource,
    FeedbackStatus,
    GuidelineCategory,
    KnowledgeKind,
)
from .settings import OperationMode, SettingsValues, EffectiveSettings
from .results import (
    ErrorCode,
    Disposition,
    ActionResult,
    GenerationResult,
    DeliveryResult,
    RouteResult,
    DraftOutcome,
)
from .sync import (
    SyncProgress,
    SyncComplete,
    SyncError,
    SyncEvent,
    CollectionStats,
    KnowledgeStats,
    MessageStats,
)

__all__ = [
    "MessageStatus", "MessageType", "ChannelType", "CorrectionSource",
    "FeedbackStatus", "GuidelineCategory", "KnowledgeKind",
    "OperationMode", "SettingsValues", "EffectiveSettings",
    "ErrorCode", "Disposition", "ActionResult", "GenerationResult",
    "DeliveryResult", "RouteResult", "DraftOutcome",
    "SyncProgress", "SyncComplete", "SyncError", "SyncEvent",
    "CollectionStats", "KnowledgeStats", "MessageStats",
]
