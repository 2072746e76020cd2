"""Knowledge store repository — three capped per-user collections.

Each collection keeps at most CAPS[kind] rows per user. Inserting into a full
collection evicts the oldest rows first. The count/evict/insert sequence runs
under a lock on the owning user row so concurrent adds cannot overshoot the cap.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InteractionEntry, ManualCorrection, MediaLibraryEntry
from db.repositories import users as users_repo
from schemas.messages import CorrectionSource, KnowledgeKind
from schemas.sync import CollectionStats, KnowledgeStats

logger = logging.getLogger(__name__)

MANUAL_CORRECTION_CAP = 500
MEDIA_LIBRARY_CAP = 50
INTERACTION_CAP = 200

CAPS = {
    KnowledgeKind.MANUAL_CORRECTION: MANUAL_CORRECTION_CAP,
    KnowledgeKind.MEDIA: MEDIA_LIBRARY_CAP,
    KnowledgeKind.INTERACTION: INTERACTION_CAP,
}

# kind -> (model, recency column)
_COLLECTIONS = {
    KnowledgeKind.MANUAL_CORRECTION: (ManualCorrection, ManualCorrection.created_at),
    KnowledgeKind.MEDIA: (MediaLibraryEntry, MediaLibraryEntry.synced_at),
    KnowledgeKind.INTERACTION: (InteractionEntry, InteractionEntry.interacted_at),
}


async def _count(session: AsyncSession, kind: KnowledgeKind, user_id: str) -> int:
    model, _ = _COLLECTIONS[kind]
    result = await session.execute(
        select(func.count()).select_from(model).where(model.user_id == user_id)
    )
    return result.scalar_one()


async def _add_capped(session: AsyncSession, kind: KnowledgeKind, entry):
    """Insert ``entry``, evicting the user's oldest rows when the cap is reached."""
    model, recency = _COLLECTIONS[kind]
    user_id = entry.user_id
    if await users_repo.lock_user(session, user_id) is None:
        raise ValueError(f"Unknown user: {user_id}")

    cap = CAPS[kind]
    overflow = await _count(session, kind, user_id) - cap + 1
    if overflow > 0:
        oldest = await session.execute(
            select(model.id)
            .where(model.user_id == user_id)
            .order_by(recency.asc(), model.id.asc())
            .limit(overflow)
        )
        evicted = list(oldest.scalars().all())
        await session.execute(delete(model).where(model.id.in_(evicted)))
        logger.info(
            "Evicted %d oldest %s entries for user %s (cap %d)",
            len(evicted), kind.value, user_id, cap,
        )

    session.add(entry)
    await session.flush()
    return entry


# ---------------------------------------------------------------------------
# Adds
# ---------------------------------------------------------------------------


async def add_manual_correction(
    session: AsyncSession,
    user_id: str,
    question: str,
    answer: str,
    source: CorrectionSource = CorrectionSource.APPROVAL_QUEUE,
    created_at: Optional[datetime] = None,
) -> ManualCorrection:
    """Store a golden Q/A pair."""
    entry = ManualCorrection(
        user_id=user_id,
        question=question,
        answer=answer,
        source=source.value,
        created_at=created_at or datetime.now(timezone.utc),
    )
    return await _add_capped(session, KnowledgeKind.MANUAL_CORRECTION, entry)


async def add_media_entry(session: AsyncSession, user_id: str, data: dict) -> MediaLibraryEntry:
    """Store a media library entry.

    data dict keys: external_media_id, caption, media_type, media_url,
    thumbnail_url, permalink, video_transcription, image_description,
    posted_at, synced_at
    """
    entry = MediaLibraryEntry(user_id=user_id, **data)
    if entry.synced_at is None:
        entry.synced_at = datetime.now(timezone.utc)
    return await _add_capped(session, KnowledgeKind.MEDIA, entry)


async def add_interaction(session: AsyncSession, user_id: str, data: dict) -> InteractionEntry:
    """Store an interaction.

    data dict keys: external_id, channel_type, sender_name, sender_username,
    user_message, my_response, post_context, interacted_at
    """
    entry = InteractionEntry(user_id=user_id, **data)
    if entry.interacted_at is None:
        entry.interacted_at = datetime.now(timezone.utc)
    return await _add_capped(session, KnowledgeKind.INTERACTION, entry)


async def upsert_media_entry(
    session: AsyncSession, user_id: str, data: dict
) -> tuple[MediaLibraryEntry, bool]:
    """Insert or refresh a media entry keyed by (user_id, external_media_id).

    Returns (entry, created).
    """
    result = await session.execute(
        select(MediaLibraryEntry)
        .where(MediaLibraryEntry.user_id == user_id)
        .where(MediaLibraryEntry.external_media_id == data["external_media_id"])
    )
    existing = result.scalar_one_or_none()
    if existing is None:
        return await add_media_entry(session, user_id, data), True
    for key, value in data.items():
        if key != "external_media_id" and value is not None:
            setattr(existing, key, value)
    existing.synced_at = datetime.now(timezone.utc)
    await session.flush()
    return existing, False


async def upsert_interaction(
    session: AsyncSession, user_id: str, data: dict
) -> tuple[InteractionEntry, bool]:
    """Insert or refresh an interaction keyed by (user_id, external_id).

    Returns (entry, created).
    """
    external_id = data.get("external_id")
    existing = None
    if external_id:
        result = await session.execute(
            select(InteractionEntry)
            .where(InteractionEntry.user_id == user_id)
            .where(InteractionEntry.external_id == external_id)
        )
        existing = result.scalar_one_or_none()
    if existing is None:
        return await add_interaction(session, user_id, data), True
    if data.get("my_response"):
        existing.my_response = data["my_response"]
    if data.get("post_context"):
        existing.post_context = data["post_context"]
    await session.flush()
    return existing, False


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def list_all(session: AsyncSession, kind: KnowledgeKind, user_id: str) -> list:
    """Return every entry of one collection for a user (no particular order)."""
    model, _ = _COLLECTIONS[kind]
    result = await session.execute(select(model).where(model.user_id == user_id))
    return list(result.scalars().all())


async def list_recent(
    session: AsyncSession, kind: KnowledgeKind, user_id: str, limit: int
) -> list:
    """Return the ``limit`` most recent entries, newest first."""
    model, recency = _COLLECTIONS[kind]
    result = await session.execute(
        select(model)
        .where(model.user_id == user_id)
        .order_by(recency.desc(), model.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count(session: AsyncSession, kind: KnowledgeKind, user_id: str) -> int:
    return await _count(session, kind, user_id)


async def get_stats(session: AsyncSession, user_id: str) -> KnowledgeStats:
    """Counts and limits per collection."""
    return KnowledgeStats(
        manual_corrections=CollectionStats(
            count=await _count(session, KnowledgeKind.MANUAL_CORRECTION, user_id),
            limit=CAPS[KnowledgeKind.MANUAL_CORRECTION],
        ),
        media_library=CollectionStats(
            count=await _count(session, KnowledgeKind.MEDIA, user_id),
            limit=CAPS[KnowledgeKind.MEDIA],
        ),
        interactions=CollectionStats(
            count=await _count(session, KnowledgeKind.INTERACTION, user_id),
            limit=CAPS[KnowledgeKind.INTERACTION],
        ),
    )


async def find_cap_violations(session: AsyncSession) -> list[str]:
    """Report (user, collection) pairs holding more rows than their cap."""
    problems = []
    for kind, (model, _) in _COLLECTIONS.items():
        result = await session.execute(
            select(model.user_id, func.count())
            .group_by(model.user_id)
            .having(func.count() > CAPS[kind])
        )
        for user_id, total in result.all():
            problems.append(f"user {user_id} has {total} {kind.value} entries (cap {CAPS[kind]})")
    return problems


# ---------------------------------------------------------------------------
# Mutations on existing entries
# ---------------------------------------------------------------------------


async def remove(
    session: AsyncSession, kind: KnowledgeKind, entry_id: UUID, user_id: str
) -> bool:
    """Delete one entry owned by ``user_id``.

    Returns False when the id does not exist or belongs to another user.
    """
    model, _ = _COLLECTIONS[kind]
    result = await session.execute(
        delete(model)
        .where(model.id == entry_id)
        .where(model.user_id == user_id)
        .returning(model.id)
    )
    removed = result.scalar_one_or_none() is not None
    await session.flush()
    return removed


async def update_manual_correction(
    session: AsyncSession,
    entry_id: UUID,
    user_id: str,
    question: Optional[str] = None,
    answer: Optional[str] = None,
) -> Optional[ManualCorrection]:
    result = await session.execute(
        select(ManualCorrection)
        .where(ManualCorrection.id == entry_id)
        .where(ManualCorrection.user_id == user_id)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        return None
    if question is not None:
        entry.question = question
    if answer is not None:
        entry.answer = answer
    await session.flush()
    return entry


async def promote_interaction(
    session: AsyncSession, interaction_id: UUID, user_id: str
) -> Optional[ManualCorrection]:
    """Copy an answered interaction into the golden corrections.

    Returns None when the interaction is missing, foreign, or has no owner reply.
    """
    result = await session.execute(
        select(InteractionEntry)
        .where(InteractionEntry.id == interaction_id)
        .where(InteractionEntry.user_id == user_id)
    )
    interaction = result.scalar_one_or_none()
    if interaction is None or not interaction.my_response:
        return None
    return await add_manual_correction(
        session,
        user_id,
        question=interaction.user_message,
        answer=interaction.my_response,
        source=CorrectionSource.PROMOTED,
    )
