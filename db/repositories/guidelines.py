"""Guideline repository — prioritized rules injected into every prompt."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import UserGuideline
from schemas.messages import GuidelineCategory

logger = logging.getLogger(__name__)


async def add_guideline(
    session: AsyncSession,
    user_id: Optional[str],
    rule: str,
    priority: int = 3,
    category: GuidelineCategory = GuidelineCategory.GENERAL,
) -> UserGuideline:
    """Add a rule. ``user_id=None`` creates a global rule shared by all users."""
    if not 1 <= priority <= 5:
        raise ValueError(f"priority must be between 1 and 5, got {priority}")
    guideline = UserGuideline(
        user_id=user_id,
        rule=rule.strip(),
        priority=priority,
        category=category.value,
    )
    session.add(guideline)
    await session.flush()
    return guideline


async def list_guidelines(session: AsyncSession, user_id: str) -> list[UserGuideline]:
    """Return the user's own rules, newest first."""
    result = await session.execute(
        select(UserGuideline)
        .where(UserGuideline.user_id == user_id)
        .order_by(UserGuideline.created_at.desc())
    )
    return list(result.scalars().all())


async def list_active(session: AsyncSession, user_id: str) -> list[UserGuideline]:
    """Return active rules (user's and global) in insertion order.

    The prompt composer applies the priority ordering.
    """
    result = await session.execute(
        select(UserGuideline)
        .where(or_(UserGuideline.user_id == user_id, UserGuideline.user_id.is_(None)))
        .where(UserGuideline.is_active.is_(True))
        .order_by(UserGuideline.created_at.asc())
    )
    return list(result.scalars().all())


async def set_active(
    session: AsyncSession, guideline_id: UUID, user_id: str, is_active: bool
) -> Optional[UserGuideline]:
    result = await session.execute(
        select(UserGuideline)
        .where(UserGuideline.id == guideline_id)
        .where(UserGuideline.user_id == user_id)
    )
    guideline = result.scalar_one_or_none()
    if guideline is None:
        return None
    guideline.is_active = is_active
    await session.flush()
    return guideline


async def delete_guideline(session: AsyncSession, guideline_id: UUID, user_id: str) -> bool:
    """Delete one of the user's rules; global rules cannot be deleted this way."""
    result = await session.execute(
        delete(UserGuideline)
        .where(UserGuideline.id == guideline_id)
        .where(UserGuideline.user_id == user_id)
        .returning(UserGuideline.id)
    )
    await session.flush()
    return result.scalar_one_or_none() is not None
