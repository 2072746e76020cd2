"""Typed results returned across component boundaries.

Expected failures (bad input, external API errors, timeouts) are reported
through these models with a machine-readable ``error_code`` instead of being
raised to the caller.
"""
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schemas.messages import MessageStatus


class ErrorCode(str, Enum):
    NOT_CONNECTED = "NOT_CONNECTED"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    MISSING_API_KEY = "MISSING_API_KEY"
    RATE_LIMIT = "RATE_LIMIT"
    API_ERROR = "API_ERROR"
    TIMEOUT = "TIMEOUT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    SEND_FAILED = "SEND_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class Disposition(str, Enum):
    PENDING = "pending"
    AUTO_SEND = "auto_send"


class ActionResult(BaseModel):
    success: bool
    error_code: Optional[ErrorCode] = None
    message: str = ""
    message_id: Optional[UUID] = None
    status: Optional[MessageStatus] = None
    message_sent: Optional[bool] = None
    send_error_code: Optional[ErrorCode] = None
    send_error: Optional[str] = None
    suggested_response: Optional[str] = None
    confidence_score: Optional[float] = None

    @classmethod
    def fail(cls, code: ErrorCode, message: str, **extra) -> "ActionResult":
        return cls(success=False, error_code=code, message=message, **extra)


class GenerationResult(BaseModel):
    success: bool
    response: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None
    model_used: Optional[str] = None
    duration_ms: Optional[int] = None


class DeliveryResult(BaseModel):
    success: bool
    external_id: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None


class RouteResult(BaseModel):
    disposition: Disposition
    status: MessageStatus
    sent: bool = False
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None


class DraftOutcome(BaseModel):
    """Result of drafting (and routing) one inbound message."""

    success: bool
    message_id: UUID
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None
    confidence_score: Optional[float] = None
    route: Optional[RouteResult] = None
