"""Personality synthesis from the knowledge store."""
from unittest.mock import AsyncMock, patch

import pytest

from db.repositories import guidelines as guidelines_repo
from db.repositories import knowledge as knowledge_repo
from db.repositories import settings as settings_repo
from pipeline import personality
from pipeline.personality import extract_patterns
from schemas.messages import ChannelType
from schemas.results import ErrorCode, GenerationResult

from tests.factories import USER_ID


async def _seed_knowledge(session, captions=3, replies=2):
    for i in range(captions):
        await knowledge_repo.add_media_entry(session, USER_ID, {
            "external_media_id": f"m_{i}",
            "caption": f"Bom dia! Hoje tem bolo de cenoura fresquinho número {i} ☕ #cafedaana",
        })
    for i in range(replies):
        await knowledge_repo.add_interaction(session, USER_ID, {
            "channel_type": ChannelType.PUBLIC_COMMENT.value,
            "user_message": f"Pergunta {i}",
            "my_response": f"Oi! Temos sim, abraço {i}",
        })


def test_extract_patterns():
    patterns = extract_patterns([
        "Oi gente! Bolo novo ☕ #cafedaana",
        "Oi! Obrigada pelo carinho, abraço",
        "Bom dia! #CafeDaAna #bolo",
    ])
    assert patterns["greetings"][0] == "oi"
    assert "abraço" in patterns["signoffs"]
    assert "☕" in patterns["emojis"]
    assert patterns["hashtags"][0] == "#cafedaana"


@pytest.mark.asyncio
async def test_not_connected(session, other_user):
    result = await personality.generate_personality(session, other_user.id)
    assert result.error_code is ErrorCode.NOT_CONNECTED


@pytest.mark.asyncio
async def test_too_little_knowledge(session, user):
    await _seed_knowledge(session, captions=2, replies=1)
    with patch("pipeline.generation.generate_system_prompt", new=AsyncMock()) as gen:
        result = await personality.generate_personality(session, USER_ID)

    assert result.error_code is ErrorCode.INSUFFICIENT_DATA
    gen.assert_not_awaited()


@pytest.mark.asyncio
async def test_generated_prompt_becomes_user_override(session, user):
    await _seed_knowledge(session)
    await guidelines_repo.add_guideline(session, USER_ID, "Nunca fale de política", priority=5)
    synthesized = GenerationResult(success=True, response="Você é a Ana, calorosa e direta.", confidence=1.0)
    with patch("pipeline.generation.generate_system_prompt", new=AsyncMock(return_value=synthesized)) as gen:
        result = await personality.generate_personality(session, USER_ID)

    assert result.success is True
    material = gen.await_args.args[0]
    assert material.index("PRIORITY GUIDELINES") < material.index("POST CAPTIONS")
    assert "1. [Priority 5] Nunca fale de política" in material
    stored = await settings_repo.get_user_settings(session, USER_ID)
    assert stored.system_prompt == "Você é a Ana, calorosa e direta."


@pytest.mark.asyncio
async def test_generation_failure_keeps_settings(session, user):
    await _seed_knowledge(session)
    failed = GenerationResult(success=False, error_code=ErrorCode.TIMEOUT, error="timed out")
    with patch("pipeline.generation.generate_system_prompt", new=AsyncMock(return_value=failed)):
        result = await personality.generate_personality(session, USER_ID)

    assert result.error_code is ErrorCode.TIMEOUT
    assert await settings_repo.get_user_settings(session, USER_ID) is None
