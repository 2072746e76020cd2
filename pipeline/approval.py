"""Approval workflow for a single inbound message.

States: pending -> approved | rejected | auto_sent. Terminal states never
change. Every transition is a compare-and-swap on ``status = 'pending'`` so
two concurrent dispositions cannot both win; the loser gets ALREADY_PROCESSED.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from db.repositories import observability as obs_repo
from db.repositories import users as users_repo
from db.models import AiDraftResponse
from pipeline import delivery, generation
from pipeline.drafting import build_prompt
from pipeline.settings import load_effective_settings
from schemas.messages import CorrectionSource, FeedbackStatus, MessageStatus
from schemas.results import ActionResult, ErrorCode

logger = logging.getLogger(__name__)

_NOT_FOUND = "Message not found."
_ALREADY_PROCESSED = "Message was already processed."


async def approve(
    session: AsyncSession,
    user_id: str,
    message_id: UUID,
    response: str,
    was_edited: bool = False,
) -> ActionResult:
    """Approve ``response`` as the reply, record it, then send it.

    The approval is committed before the send and persists even when delivery
    fails; ``message_sent`` and the send error fields report the delivery
    outcome separately. An edited reply becomes a golden correction once the
    send has returned.
    """
    response = (response or "").strip()
    if not response:
        return ActionResult.fail(ErrorCode.VALIDATION_ERROR, "Response text is required.")

    message = await messages_repo.get_message(session, message_id, user_id)
    user = await users_repo.get_user(session, user_id)
    if message is None or user is None:
        return ActionResult.fail(ErrorCode.NOT_FOUND, _NOT_FOUND)

    if not await messages_repo.transition_status(session, message.id, MessageStatus.APPROVED):
        return ActionResult.fail(
            ErrorCode.ALREADY_PROCESSED, _ALREADY_PROCESSED,
            message_id=message.id, status=await messages_repo.refresh_status(session, message),
        )

    now = datetime.now(timezone.utc)
    draft = message.draft
    if draft is None:
        # approved a message that never got an AI draft; the operator wrote it
        draft = AiDraftResponse(
            message_id=message.id,
            suggested_response=response,
            confidence_score=1.0,
        )
        message.draft = draft
    draft.final_response = response
    draft.was_edited = was_edited
    draft.was_approved = True
    draft.approved_at = now
    await session.commit()

    sent = await delivery.deliver(user, message, response)
    if was_edited:
        await knowledge_repo.add_manual_correction(
            session,
            user_id,
            question=message.content,
            answer=response,
            source=CorrectionSource.APPROVAL_QUEUE,
        )
    logger.info(
        "Approved message %s (edited=%s, sent=%s)", message.id, was_edited, sent.success
    )
    return ActionResult(
        success=True,
        message="Reply approved and sent." if sent.success else "Reply approved but not delivered.",
        message_id=message.id,
        status=MessageStatus.APPROVED,
        message_sent=sent.success,
        send_error_code=sent.error_code,
        send_error=sent.error,
    )


async def reject(session: AsyncSession, user_id: str, message_id: UUID) -> ActionResult:
    """Reject the message; nothing is sent and no knowledge is recorded."""
    message = await messages_repo.get_message(session, message_id, user_id)
    if message is None:
        return ActionResult.fail(ErrorCode.NOT_FOUND, _NOT_FOUND)

    if not await messages_repo.transition_status(session, message.id, MessageStatus.REJECTED):
        return ActionResult.fail(
            ErrorCode.ALREADY_PROCESSED, _ALREADY_PROCESSED,
            message_id=message.id, status=await messages_repo.refresh_status(session, message),
        )

    if message.draft is not None:
        message.draft.was_approved = False
        await session.flush()
    logger.info("Rejected message %s", message.id)
    return ActionResult(
        success=True,
        message="Message rejected.",
        message_id=message.id,
        status=MessageStatus.REJECTED,
    )


async def regenerate(session: AsyncSession, user_id: str, message_id: UUID) -> ActionResult:
    """Ask the AI for a different suggestion; status never changes.

    On failure the existing draft is left exactly as it was.
    """
    message = await messages_repo.get_message(session, message_id, user_id)
    if message is None:
        return ActionResult.fail(ErrorCode.NOT_FOUND, _NOT_FOUND)
    if message.status != MessageStatus.PENDING.value:
        return ActionResult.fail(
            ErrorCode.ALREADY_PROCESSED, _ALREADY_PROCESSED,
            message_id=message.id, status=MessageStatus(message.status),
        )

    previous: Optional[str] = message.draft.suggested_response if message.draft else None
    settings = await load_effective_settings(session, user_id)
    prompt = await build_prompt(session, user_id, message, settings, previous_response=previous)
    result = await generation.generate_reply(prompt.instruction, prompt.message)
    await obs_repo.log_generation(
        session, "regenerate", result, user_id=user_id, message_id=message.id
    )
    if not result.success:
        return ActionResult.fail(
            result.error_code, result.error or "Generation failed.",
            message_id=message.id, status=MessageStatus.PENDING,
        )

    draft = await messages_repo.save_draft(
        session, message, result.response, result.confidence, result.reasoning
    )
    logger.info("Regenerated draft for message %s (confidence %.2f)", message.id, draft.confidence_score)
    return ActionResult(
        success=True,
        message="New suggestion generated.",
        message_id=message.id,
        status=MessageStatus.PENDING,
        suggested_response=draft.suggested_response,
        confidence_score=draft.confidence_score,
    )


async def submit_feedback(
    session: AsyncSession,
    user_id: str,
    message_id: UUID,
    feedback_status: FeedbackStatus,
    text: Optional[str] = None,
) -> ActionResult:
    """Store a like/dislike (and optional comment) on the message's draft."""
    message = await messages_repo.get_message(session, message_id, user_id)
    if message is None or message.draft is None:
        return ActionResult.fail(ErrorCode.NOT_FOUND, "Draft not found.")
    message.draft.feedback_status = FeedbackStatus(feedback_status).value
    if text is not None:
        message.draft.human_feedback = text.strip() or None
    await session.flush()
    return ActionResult(
        success=True,
        message="Feedback saved.",
        message_id=message.id,
        status=MessageStatus(message.status),
    )
