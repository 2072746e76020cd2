"""End-to-end flows through sync, drafting, routing and approval."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from db.repositories import settings as settings_repo
from pipeline import approval, drafting, ingestion, sync
from schemas.messages import KnowledgeKind, MessageStatus
from schemas.results import ErrorCode, GenerationResult
from schemas.settings import OperationMode, SettingsValues

from tests.factories import ACCOUNT_ID, USER_ID, USERNAME

IG_MODULE = "tools.instagram_tools"


@pytest.mark.asyncio
async def test_sync_draft_and_edited_approval(session, user):
    await settings_repo.update_user_settings(
        session, USER_ID, SettingsValues(operation_mode=OperationMode.SEMI_AUTO, confidence_threshold=90)
    )
    post = {"id": "m_1", "caption": "Bolo de cenoura saindo do forno!", "media_type": "IMAGE"}
    comment = {
        "id": "c_1", "text": "Qual o preço?", "username": "joao",
        "from": {"id": "igsid_joao", "username": "joao"}, "replies": [],
    }
    reply_tool = MagicMock(return_value={"success": True, "comment_id": "c_reply"})
    low_confidence = GenerationResult(success=True, response="Custa R$40.", confidence=0.6)

    with patch.multiple(
        IG_MODULE,
        instagram_get_profile=MagicMock(return_value={"id": ACCOUNT_ID, "username": USERNAME}),
        instagram_list_media=MagicMock(return_value={"items": [post], "next": None}),
        instagram_list_comments=MagicMock(return_value={"media_id": "m_1", "items": [comment]}),
        instagram_reply_to_comment=reply_tool,
    ), patch("pipeline.generation.generate_reply", new=AsyncMock(return_value=low_confidence)):
        events = [event async for event in sync.sync_account(session, USER_ID)]
        assert events[-1].message_count == 1

        outcomes = await drafting.draft_pending(session, USER_ID)
        assert outcomes[0].route.status is MessageStatus.PENDING
        reply_tool.assert_not_called()

        message_id = outcomes[0].message_id
        result = await approval.approve(session, USER_ID, message_id, "R$50", was_edited=True)

    assert result.success is True
    assert result.message_sent is True
    reply_tool.assert_called_once_with("c_1", "R$50", "token-ana")

    stored = await messages_repo.get_message(session, message_id)
    assert stored.status == MessageStatus.APPROVED.value
    assert stored.draft.suggested_response == "Custa R$40."
    assert stored.draft.final_response == "R$50"
    assert stored.draft.was_edited is True

    corrections = await knowledge_repo.list_all(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID)
    assert [(c.question, c.answer) for c in corrections] == [("Qual o preço?", "R$50")]


@pytest.mark.asyncio
async def test_failed_auto_send_falls_back_to_queue(session, user):
    await settings_repo.set_global(session, SettingsValues(operation_mode=OperationMode.AUTO))
    payload = {
        "object": "instagram",
        "entry": [{
            "id": ACCOUNT_ID,
            "messaging": [{
                "sender": {"id": "igsid_maria"},
                "recipient": {"id": ACCOUNT_ID},
                "message": {"mid": "mid.1", "text": "Vocês entregam no Centro?"},
            }],
        }],
    }
    confident = GenerationResult(success=True, response="Entregamos sim!", confidence=0.95)
    send_error = {
        "success": False, "message_id": None,
        "error": "This person is not available to receive messages right now.",
        "error_code": "API_ERROR",
    }

    with patch.multiple(
        IG_MODULE,
        instagram_get_user=MagicMock(return_value={"name": "Maria", "username": "maria"}),
        instagram_send_message=MagicMock(return_value=send_error),
    ), patch("pipeline.generation.generate_reply", new=AsyncMock(return_value=confident)):
        outcomes = await ingestion.process_webhook(session, payload)

    route = outcomes[0].route
    assert route.status is MessageStatus.PENDING
    assert route.error_code is ErrorCode.SEND_FAILED
    assert "not available" in route.error

    stored = await messages_repo.get_message(session, outcomes[0].message_id)
    assert stored.status == MessageStatus.PENDING.value
    assert stored.sender_username == "maria"
    assert stored.draft.suggested_response == "Entregamos sim!"
    assert stored.draft.was_approved is None
