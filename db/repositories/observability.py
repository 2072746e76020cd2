"""Observability repository — AI generation logging."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import GenerationLog
from schemas.results import GenerationResult

logger = logging.getLogger(__name__)


async def log_generation(
    session: AsyncSession,
    purpose: str,
    result: GenerationResult,
    *,
    user_id: Optional[str] = None,
    message_id: Optional[UUID] = None,
) -> GenerationLog:
    """Record one AI completion attempt (successful or not)."""
    entry = GenerationLog(
        user_id=user_id,
        message_id=message_id,
        purpose=purpose,
        model_used=result.model_used,
        success=result.success,
        error_code=result.error_code.value if result.error_code else None,
        error_message=result.error,
        duration_ms=result.duration_ms,
    )
    session.add(entry)
    await session.flush()
    return entry
