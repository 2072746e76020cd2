"""Operation settings: the stored tiers and the resolved view."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OperationMode(str, Enum):
    MANUAL = "manual"
    SEMI_AUTO = "semi_auto"
    AUTO = "auto"


class SettingsValues(BaseModel):
    """One settings tier. Every field is optional; None means "not set here"."""

    operation_mode: Optional[OperationMode] = None
    confidence_threshold: Optional[int] = Field(default=None, ge=50, le=100)
    system_prompt: Optional[str] = None
    ai_tone: Optional[str] = None


class EffectiveSettings(BaseModel):
    operation_mode: OperationMode
    confidence_threshold: int = Field(ge=50, le=100)
    system_prompt: str
    ai_tone: Optional[str] = None
