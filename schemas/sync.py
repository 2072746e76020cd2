"""Sync progress events and knowledge stats."""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from schemas.results import ErrorCode


class SyncProgress(BaseModel):
    type: Literal["progress"] = "progress"
    progress: int = Field(ge=0, le=100)
    step: str


class SyncComplete(BaseModel):
    type: Literal["complete"] = "complete"
    progress: int = 100
    media_count: int = 0
    interaction_count: int = 0
    message_count: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncError(BaseModel):
    type: Literal["error"] = "error"
    error_code: Optional[ErrorCode] = None
    message: str


SyncEvent = Union[SyncProgress, SyncComplete, SyncError]


class CollectionStats(BaseModel):
    count: int
    limit: int


class KnowledgeStats(BaseModel):
    manual_corrections: CollectionStats
    media_library: CollectionStats
    interactions: CollectionStats


class MessageStats(BaseModel):
    total_messages: int = 0
    pending_messages: int = 0
    approved_today: int = 0
    rejected_today: int = 0
    auto_sent_today: int = 0
    avg_confidence: Optional[float] = None
