"""Approval workflow: approve / reject / regenerate / feedback on one message."""
import uuid
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from pipeline import approval
from schemas.messages import CorrectionSource, FeedbackStatus, KnowledgeKind, MessageStatus
from schemas.results import DeliveryResult, ErrorCode, GenerationResult

from tests.factories import USER_ID, make_message

SENT = DeliveryResult(success=True, external_id="reply_1")


@pytest.fixture
def deliver():
    with patch("pipeline.delivery.deliver", new=AsyncMock(return_value=SENT)) as mock:
        yield mock


@pytest_asyncio.fixture
async def drafted(session, user):
    message = await make_message(session)
    await messages_repo.save_draft(session, message, "Custa R$40.", 0.7, "price question")
    return message


class TestApprove:
    @pytest.mark.asyncio
    async def test_approve_unedited_sends_and_records(self, session, drafted, deliver):
        result = await approval.approve(session, USER_ID, drafted.id, "Custa R$40.")

        assert result.success is True
        assert result.status is MessageStatus.APPROVED
        assert result.message_sent is True
        deliver.assert_awaited_once()

        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.APPROVED.value
        assert stored.draft.final_response == "Custa R$40."
        assert stored.draft.was_approved is True
        assert stored.draft.was_edited is False
        assert stored.draft.approved_at is not None
        assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 0

    @pytest.mark.asyncio
    async def test_edited_approval_feeds_back_one_golden_correction(self, session, drafted, deliver):
        result = await approval.approve(session, USER_ID, drafted.id, "R$50", was_edited=True)

        assert result.success is True
        corrections = await knowledge_repo.list_all(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID)
        assert len(corrections) == 1
        assert corrections[0].question == "Qual o preço?"
        assert corrections[0].answer == "R$50"
        assert corrections[0].source == CorrectionSource.APPROVAL_QUEUE.value
        assert deliver.await_args.args[2] == "R$50"

    @pytest.mark.asyncio
    async def test_golden_correction_is_written_after_the_send(self, session, drafted):
        seen_at_send = []

        async def record_knowledge_at_send(*args):
            seen_at_send.append(
                await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID)
            )
            return SENT

        with patch("pipeline.delivery.deliver", new=record_knowledge_at_send):
            await approval.approve(session, USER_ID, drafted.id, "R$50", was_edited=True)

        assert seen_at_send == [0]
        assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 1

    @pytest.mark.asyncio
    async def test_send_failure_keeps_the_approval(self, session, drafted):
        failed = DeliveryResult(
            success=False, error_code=ErrorCode.SEND_FAILED, error="Access token expired or invalid."
        )
        with patch("pipeline.delivery.deliver", new=AsyncMock(return_value=failed)):
            result = await approval.approve(session, USER_ID, drafted.id, "Custa R$40.")

        assert result.success is True
        assert result.message_sent is False
        assert result.send_error_code is ErrorCode.SEND_FAILED
        assert result.send_error == "Access token expired or invalid."
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.APPROVED.value

    @pytest.mark.asyncio
    async def test_second_approval_is_already_processed(self, session, drafted, deliver):
        await approval.approve(session, USER_ID, drafted.id, "Custa R$40.")
        again = await approval.approve(session, USER_ID, drafted.id, "Outra resposta")

        assert again.success is False
        assert again.error_code is ErrorCode.ALREADY_PROCESSED
        assert again.status is MessageStatus.APPROVED
        deliver.assert_awaited_once()
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.draft.final_response == "Custa R$40."

    @pytest.mark.asyncio
    async def test_empty_response_is_rejected(self, session, drafted, deliver):
        result = await approval.approve(session, USER_ID, drafted.id, "   ")
        assert result.error_code is ErrorCode.VALIDATION_ERROR
        deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_or_foreign_message_is_not_found(self, session, drafted, other_user, deliver):
        missing = await approval.approve(session, USER_ID, uuid.uuid4(), "oi")
        foreign = await approval.approve(session, other_user.id, drafted.id, "oi")

        assert missing.error_code is ErrorCode.NOT_FOUND
        assert foreign.error_code is ErrorCode.NOT_FOUND
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_approve_without_draft_creates_one(self, session, user, deliver):
        message = await make_message(session, external_id="c_nodraft")
        result = await approval.approve(session, USER_ID, message.id, "Obrigada!")

        assert result.success is True
        stored = await messages_repo.get_message(session, message.id)
        assert stored.draft.suggested_response == "Obrigada!"
        assert stored.draft.final_response == "Obrigada!"


class TestReject:
    @pytest.mark.asyncio
    async def test_reject_marks_draft_and_sends_nothing(self, session, drafted, deliver):
        result = await approval.reject(session, USER_ID, drafted.id)

        assert result.success is True
        assert result.status is MessageStatus.REJECTED
        deliver.assert_not_awaited()
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.REJECTED.value
        assert stored.draft.was_approved is False
        assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 0

    @pytest.mark.asyncio
    async def test_terminal_states_never_change(self, session, drafted, deliver):
        await approval.reject(session, USER_ID, drafted.id)

        approve_after = await approval.approve(session, USER_ID, drafted.id, "R$50", was_edited=True)
        reject_again = await approval.reject(session, USER_ID, drafted.id)

        assert approve_after.error_code is ErrorCode.ALREADY_PROCESSED
        assert reject_again.error_code is ErrorCode.ALREADY_PROCESSED
        deliver.assert_not_awaited()
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.REJECTED.value
        assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 0


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_regenerate_overwrites_suggestion_and_mentions_previous(self, session, drafted):
        fresh = GenerationResult(success=True, response="Sai por R$45!", confidence=0.88, reasoning="r")
        with patch("pipeline.generation.generate_reply", new=AsyncMock(return_value=fresh)) as gen:
            result = await approval.regenerate(session, USER_ID, drafted.id)

        assert result.success is True
        assert result.suggested_response == "Sai por R$45!"
        assert result.status is MessageStatus.PENDING
        user_turn = gen.await_args.args[1]
        assert 'Your previous suggestion was: "Custa R$40."' in user_turn

        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.status == MessageStatus.PENDING.value
        assert stored.draft.suggested_response == "Sai por R$45!"
        assert stored.draft.confidence_score == pytest.approx(0.88)

    @pytest.mark.asyncio
    async def test_failed_regeneration_leaves_draft_untouched(self, session, drafted):
        limited = GenerationResult(
            success=False, error_code=ErrorCode.RATE_LIMIT, error="rate limited"
        )
        with patch("pipeline.generation.generate_reply", new=AsyncMock(return_value=limited)):
            result = await approval.regenerate(session, USER_ID, drafted.id)

        assert result.success is False
        assert result.error_code is ErrorCode.RATE_LIMIT
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.draft.suggested_response == "Custa R$40."
        assert stored.draft.confidence_score == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_regenerate_without_provider_reports_missing_key(self, session, drafted):
        result = await approval.regenerate(session, USER_ID, drafted.id)

        assert result.error_code is ErrorCode.MISSING_API_KEY
        stored = await messages_repo.get_message(session, drafted.id)
        assert stored.draft.suggested_response == "Custa R$40."

    @pytest.mark.asyncio
    async def test_regenerate_terminal_message_is_refused(self, session, drafted, deliver):
        await approval.reject(session, USER_ID, drafted.id)
        with patch("pipeline.generation.generate_reply", new=AsyncMock()) as gen:
            result = await approval.regenerate(session, USER_ID, drafted.id)

        assert result.error_code is ErrorCode.ALREADY_PROCESSED
        gen.assert_not_awaited()


@pytest.mark.asyncio
async def test_feedback_is_stored_on_the_draft(session, drafted):
    result = await approval.submit_feedback(
        session, USER_ID, drafted.id, FeedbackStatus.DISLIKE, "  muito formal  "
    )

    assert result.success is True
    stored = await messages_repo.get_message(session, drafted.id)
    assert stored.draft.feedback_status == "dislike"
    assert stored.draft.human_feedback == "muito formal"


@pytest.mark.asyncio
async def test_feedback_without_draft_is_not_found(session, user):
    message = await make_message(session, external_id="c_plain")
    result = await approval.submit_feedback(session, USER_ID, message.id, FeedbackStatus.LIKE)
    assert result.error_code is ErrorCode.NOT_FOUND
