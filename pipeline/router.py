"""Confidence-gated response router.

Decides what happens to a freshly drafted reply: queue it for a human
(PENDING) or send it right away (AUTO_SEND). A failed auto-send puts the
message back in the pending queue with the error reported.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AiDraftResponse, InboundMessage, User
from db.repositories import messages as messages_repo
from pipeline import delivery
from schemas.messages import MessageStatus
from schemas.results import Disposition, ErrorCode, RouteResult
from schemas.settings import EffectiveSettings, OperationMode

logger = logging.getLogger(__name__)


def decide_disposition(
    operation_mode: OperationMode, confidence_threshold: int, confidence_score: float
) -> Disposition:
    """manual always queues, auto always sends, semi_auto sends at or above threshold."""
    mode = OperationMode(operation_mode)
    if mode is OperationMode.MANUAL:
        return Disposition.PENDING
    if mode is OperationMode.AUTO:
        return Disposition.AUTO_SEND
    # rounding keeps 0.8 * 100 == 80 despite binary floating point
    if round(confidence_score * 100, 6) >= confidence_threshold:
        return Disposition.AUTO_SEND
    return Disposition.PENDING


async def route_draft(
    session: AsyncSession,
    user: User,
    message: InboundMessage,
    draft: AiDraftResponse,
    settings: EffectiveSettings,
) -> RouteResult:
    """Apply the disposition for ``draft`` and report the message's resulting status.

    An auto-send claims the message (pending -> auto_sent) and commits the
    claim before anything goes out, so an operator acting during the send
    gets ALREADY_PROCESSED. A failed send hands the message back to the queue.
    """
    disposition = decide_disposition(
        settings.operation_mode, settings.confidence_threshold, draft.confidence_score
    )
    if disposition is Disposition.PENDING:
        return RouteResult(disposition=disposition, status=MessageStatus.PENDING)

    if not await messages_repo.transition_status(session, message.id, MessageStatus.AUTO_SENT):
        status = await messages_repo.refresh_status(session, message)
        logger.warning("Message %s was already %s, not auto-sending", message.id, status.value)
        return RouteResult(
            disposition=disposition,
            status=status,
            error_code=ErrorCode.ALREADY_PROCESSED,
            error="Message was processed by an operator before auto-send.",
        )
    await session.commit()

    sent = await delivery.deliver(user, message, draft.suggested_response)
    if not sent.success:
        await messages_repo.transition_status(
            session, message.id, MessageStatus.PENDING, from_status=MessageStatus.AUTO_SENT
        )
        logger.warning(
            "Auto-send failed for message %s, returned it to the queue: %s", message.id, sent.error
        )
        return RouteResult(
            disposition=disposition,
            status=MessageStatus.PENDING,
            error_code=sent.error_code,
            error=sent.error,
        )

    draft.final_response = draft.suggested_response
    draft.was_approved = True
    draft.approved_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Auto-sent reply for message %s (confidence %.2f)", message.id, draft.confidence_score)
    return RouteResult(disposition=disposition, status=MessageStatus.AUTO_SENT, sent=True)
