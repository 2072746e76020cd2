"""Draft generation for inbound messages, plus the trainer simulator."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InboundMessage
from db.repositories import guidelines as guidelines_repo
from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from db.repositories import observability as obs_repo
from db.repositories import users as users_repo
from pipeline import generation, router
from pipeline.prompt_composer import (
    DEFAULT_MAX_CORRECTIONS,
    DEFAULT_MAX_HISTORY,
    DEFAULT_MAX_INTERACTIONS,
    DEFAULT_MAX_MEDIA,
    ComposedPrompt,
    compose_prompt,
)
from pipeline.settings import load_effective_settings
from schemas.messages import KnowledgeKind, MessageStatus, MessageType
from schemas.results import DraftOutcome, ErrorCode, GenerationResult
from schemas.settings import EffectiveSettings

logger = logging.getLogger(__name__)


async def build_prompt(
    session: AsyncSession,
    user_id: str,
    message: InboundMessage,
    settings: EffectiveSettings,
    previous_response: Optional[str] = None,
) -> ComposedPrompt:
    """Load the knowledge snapshot for ``user_id`` and compose the prompt."""
    history = []
    if message.type == MessageType.DM.value and message.sender_id:
        history = await messages_repo.list_conversation(
            session, user_id, message.sender_id, before=message, limit=DEFAULT_MAX_HISTORY
        )
    return compose_prompt(
        settings,
        message,
        guidelines=await guidelines_repo.list_active(session, user_id),
        corrections=await knowledge_repo.list_recent(
            session, KnowledgeKind.MANUAL_CORRECTION, user_id, DEFAULT_MAX_CORRECTIONS
        ),
        media=await knowledge_repo.list_recent(
            session, KnowledgeKind.MEDIA, user_id, DEFAULT_MAX_MEDIA
        ),
        interactions=await knowledge_repo.list_recent(
            session, KnowledgeKind.INTERACTION, user_id, DEFAULT_MAX_INTERACTIONS
        ),
        previous_response=previous_response,
        history=history,
    )


async def draft_message(session: AsyncSession, user_id: str, message_id: UUID) -> DraftOutcome:
    """Generate, store and route the AI draft for one pending message."""
    message = await messages_repo.get_message(session, message_id, user_id)
    user = await users_repo.get_user(session, user_id)
    if message is None or user is None:
        return DraftOutcome(
            success=False, message_id=message_id,
            error_code=ErrorCode.NOT_FOUND, error="Message not found.",
        )
    if message.status != MessageStatus.PENDING.value:
        return DraftOutcome(
            success=False, message_id=message_id,
            error_code=ErrorCode.ALREADY_PROCESSED, error="Message was already processed.",
        )

    settings = await load_effective_settings(session, user_id)
    prompt = await build_prompt(session, user_id, message, settings)
    result = await generation.generate_reply(prompt.instruction, prompt.message)
    await obs_repo.log_generation(
        session, "draft", result, user_id=user_id, message_id=message.id
    )
    if not result.success:
        return DraftOutcome(
            success=False, message_id=message.id,
            error_code=result.error_code, error=result.error,
        )

    draft = await messages_repo.save_draft(
        session, message, result.response, result.confidence, result.reasoning
    )
    route = await router.route_draft(session, user, message, draft, settings)
    logger.info(
        "Drafted message %s: confidence=%.2f disposition=%s status=%s",
        message.id, draft.confidence_score, route.disposition.value, route.status.value,
    )
    return DraftOutcome(
        success=True,
        message_id=message.id,
        confidence_score=draft.confidence_score,
        route=route,
    )


async def draft_pending(session: AsyncSession, user_id: str) -> list[DraftOutcome]:
    """Draft every pending message that has no draft yet."""
    outcomes = []
    for message in await messages_repo.list_pending_without_draft(session, user_id):
        outcome = await draft_message(session, user_id, message.id)
        outcomes.append(outcome)
        if outcome.error_code in (ErrorCode.MISSING_API_KEY, ErrorCode.RATE_LIMIT):
            # every remaining call would fail the same way
            break
    return outcomes


async def simulate_reply(session: AsyncSession, user_id: str, text: str) -> GenerationResult:
    """Draft a reply to arbitrary text without storing a message (trainer)."""
    settings = await load_effective_settings(session, user_id)
    sample = InboundMessage(user_id=user_id, type=MessageType.DM.value, content=text)
    prompt = await build_prompt(session, user_id, sample, settings)
    result = await generation.generate_reply(prompt.instruction, prompt.message)
    await obs_repo.log_generation(session, "simulate", result, user_id=user_id)
    return result
