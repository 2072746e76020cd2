"""Inbound message repository — idempotent ingestion, drafts, status transitions."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AiDraftResponse, InboundMessage
from db.repositories.dialect import insert_for
from schemas.messages import MessageStatus, MessageType
from schemas.sync import MessageStats

logger = logging.getLogger(__name__)


async def insert_if_new(session: AsyncSession, data: dict) -> Optional[InboundMessage]:
    """Insert a message unless one with the same external_id already exists.

    Returns the new InboundMessage, or None when the external id was already
    ingested (duplicate webhook delivery, re-sync).

    data dict keys: user_id, external_id, type, content, sender_*, media_*,
    post_*, parent_comment_*
    """
    stmt = (
        insert_for(session, InboundMessage)
        .values(**data)
        .on_conflict_do_nothing(index_elements=["external_id"])
        .returning(InboundMessage.id)
    )
    result = await session.execute(stmt)
    new_id = result.scalar_one_or_none()
    await session.flush()
    if new_id is None:
        logger.debug("Skipped duplicate message external_id=%s", data.get("external_id"))
        return None
    return await get_message(session, new_id)


async def get_message(
    session: AsyncSession, message_id: UUID, user_id: Optional[str] = None
) -> Optional[InboundMessage]:
    """Return the message (with its draft loaded), optionally scoped to an owner."""
    stmt = select(InboundMessage).where(InboundMessage.id == message_id)
    if user_id is not None:
        stmt = stmt.where(InboundMessage.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_by_external_id(session: AsyncSession, external_id: str) -> Optional[InboundMessage]:
    result = await session.execute(
        select(InboundMessage).where(InboundMessage.external_id == external_id)
    )
    return result.scalar_one_or_none()


async def list_messages(
    session: AsyncSession,
    user_id: str,
    status: Optional[MessageStatus] = None,
    limit: int = 50,
) -> list[InboundMessage]:
    """Return the user's messages, newest first."""
    stmt = select(InboundMessage).where(InboundMessage.user_id == user_id)
    if status is not None:
        stmt = stmt.where(InboundMessage.status == status.value)
    stmt = stmt.order_by(InboundMessage.created_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_conversation(
    session: AsyncSession,
    user_id: str,
    sender_id: str,
    before: Optional[InboundMessage] = None,
    limit: int = 10,
) -> list[InboundMessage]:
    """Return the latest DMs from ``sender_id``, newest first, drafts loaded.

    With ``before``, only messages received up to that one (excluding it)
    are returned. The owner's reply is ``message.draft.final_response``.
    """
    stmt = (
        select(InboundMessage)
        .where(InboundMessage.user_id == user_id)
        .where(InboundMessage.sender_id == sender_id)
        .where(InboundMessage.type == MessageType.DM.value)
    )
    if before is not None:
        stmt = stmt.where(InboundMessage.id != before.id)
        if before.created_at is not None:
            stmt = stmt.where(InboundMessage.created_at <= before.created_at)
    stmt = stmt.order_by(InboundMessage.created_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_pending_without_draft(session: AsyncSession, user_id: str) -> list[InboundMessage]:
    """Return pending messages that never got an AI draft (oldest first)."""
    has_draft = select(AiDraftResponse.message_id)
    result = await session.execute(
        select(InboundMessage)
        .where(InboundMessage.user_id == user_id)
        .where(InboundMessage.status == MessageStatus.PENDING.value)
        .where(InboundMessage.id.not_in(has_draft))
        .order_by(InboundMessage.created_at.asc())
    )
    return list(result.scalars().all())


async def transition_status(
    session: AsyncSession,
    message_id: UUID,
    to_status: MessageStatus,
    from_status: MessageStatus = MessageStatus.PENDING,
) -> bool:
    """Compare-and-swap from_status -> to_status.

    Returns False when the message is no longer in ``from_status`` (another
    disposition won the race); the row is left untouched in that case and a
    loaded copy keeps its old values until ``refresh_status``. Moving back to
    pending clears ``processed_at``.
    """
    processed_at = None if to_status is MessageStatus.PENDING else datetime.now(timezone.utc)
    result = await session.execute(
        update(InboundMessage)
        .where(InboundMessage.id == message_id)
        .where(InboundMessage.status == from_status.value)
        .values(status=to_status.value, processed_at=processed_at)
        .returning(InboundMessage.id)
        # only rows the UPDATE matched are synced into the identity map
        .execution_options(synchronize_session="fetch")
    )
    swapped = result.scalar_one_or_none() is not None
    await session.flush()
    return swapped


async def refresh_status(session: AsyncSession, message: InboundMessage) -> MessageStatus:
    """Re-read the committed status of ``message`` (after losing a transition)."""
    await session.refresh(message, ["status", "processed_at"])
    return MessageStatus(message.status)


async def save_draft(
    session: AsyncSession,
    message: InboundMessage,
    suggested_response: str,
    confidence_score: float,
    reasoning: Optional[str] = None,
) -> AiDraftResponse:
    """Create the message's draft, or overwrite its suggestion if one exists."""
    draft = message.draft
    if draft is None:
        draft = AiDraftResponse(
            message_id=message.id,
            suggested_response=suggested_response,
            confidence_score=confidence_score,
            reasoning=reasoning,
        )
        message.draft = draft
    else:
        draft.suggested_response = suggested_response
        draft.confidence_score = confidence_score
        draft.reasoning = reasoning
    await session.flush()
    return draft


async def get_stats(session: AsyncSession, user_id: str) -> MessageStats:
    """Queue counters for the dashboard: totals plus today's dispositions."""
    start_of_day = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    status_counts = await session.execute(
        select(InboundMessage.status, func.count())
        .where(InboundMessage.user_id == user_id)
        .group_by(InboundMessage.status)
    )
    by_status = {status: count for status, count in status_counts.all()}

    today_counts = await session.execute(
        select(InboundMessage.status, func.count())
        .where(InboundMessage.user_id == user_id)
        .where(InboundMessage.processed_at >= start_of_day)
        .group_by(InboundMessage.status)
    )
    today = {status: count for status, count in today_counts.all()}

    avg_result = await session.execute(
        select(func.avg(AiDraftResponse.confidence_score))
        .join(InboundMessage, InboundMessage.id == AiDraftResponse.message_id)
        .where(InboundMessage.user_id == user_id)
    )
    avg_confidence = avg_result.scalar_one_or_none()

    return MessageStats(
        total_messages=sum(by_status.values()),
        pending_messages=by_status.get(MessageStatus.PENDING.value, 0),
        approved_today=today.get(MessageStatus.APPROVED.value, 0),
        rejected_today=today.get(MessageStatus.REJECTED.value, 0),
        auto_sent_today=today.get(MessageStatus.AUTO_SENT.value, 0),
        avg_confidence=float(avg_confidence) if avg_confidence is not None else None,
    )


async def purge_messages(session: AsyncSession, user_id: str) -> int:
    """Bulk maintenance: delete all of a user's messages and their drafts."""
    message_ids = select(InboundMessage.id).where(InboundMessage.user_id == user_id)
    count = await session.scalar(
        select(func.count()).select_from(InboundMessage).where(InboundMessage.user_id == user_id)
    )
    await session.execute(
        delete(AiDraftResponse)
        .where(AiDraftResponse.message_id.in_(message_ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(InboundMessage)
        .where(InboundMessage.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    logger.info("Purged %d messages for user %s", count, user_id)
    return count or 0


async def find_inconsistencies(session: AsyncSession) -> list[str]:
    """Report messages whose status disagrees with their draft."""
    problems = []
    result = await session.execute(
        select(InboundMessage).where(
            InboundMessage.status != MessageStatus.PENDING.value
        )
    )
    for message in result.scalars().all():
        draft = message.draft
        status = MessageStatus(message.status)
        if status in (MessageStatus.APPROVED, MessageStatus.AUTO_SENT):
            if draft is None or draft.was_approved is not True or not draft.final_response:
                problems.append(
                    f"message {message.id} is {status.value} but its draft is not approved with a final response"
                )
        elif status is MessageStatus.REJECTED and draft is not None and draft.was_approved is not False:
            problems.append(f"message {message.id} is rejected but its draft is not marked unapproved")
    return problems
