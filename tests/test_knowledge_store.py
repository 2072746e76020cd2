"""Knowledge store: per-user caps, oldest-first eviction, ownership checks."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from db.repositories import knowledge as knowledge_repo
from schemas.messages import ChannelType, CorrectionSource, KnowledgeKind

from tests.factories import USER_ID

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_cap_evicts_oldest_correction_first(session, user, monkeypatch):
    monkeypatch.setitem(knowledge_repo.CAPS, KnowledgeKind.MANUAL_CORRECTION, 3)
    for i in range(3):
        await knowledge_repo.add_manual_correction(
            session, USER_ID, f"q{i}", f"a{i}", created_at=T0 + timedelta(minutes=i)
        )

    await knowledge_repo.add_manual_correction(
        session, USER_ID, "q3", "a3", created_at=T0 + timedelta(minutes=3)
    )

    entries = await knowledge_repo.list_all(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID)
    assert len(entries) == 3
    assert sorted(e.question for e in entries) == ["q1", "q2", "q3"]


@pytest.mark.asyncio
async def test_count_never_exceeds_cap(session, user, monkeypatch):
    monkeypatch.setitem(knowledge_repo.CAPS, KnowledgeKind.INTERACTION, 5)
    for i in range(12):
        await knowledge_repo.add_interaction(session, USER_ID, {
            "channel_type": ChannelType.PUBLIC_COMMENT.value,
            "user_message": f"comment {i}",
            "interacted_at": T0 + timedelta(seconds=i),
        })
        assert await knowledge_repo.count(session, KnowledgeKind.INTERACTION, USER_ID) <= 5

    recent = await knowledge_repo.list_recent(session, KnowledgeKind.INTERACTION, USER_ID, 10)
    assert [e.user_message for e in recent] == [f"comment {i}" for i in range(11, 6, -1)]


@pytest.mark.asyncio
async def test_caps_are_per_user(session, user, other_user, monkeypatch):
    monkeypatch.setitem(knowledge_repo.CAPS, KnowledgeKind.MANUAL_CORRECTION, 2)
    for i in range(2):
        await knowledge_repo.add_manual_correction(session, other_user.id, f"b{i}", "x")
    for i in range(3):
        await knowledge_repo.add_manual_correction(session, USER_ID, f"a{i}", "x")

    assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, other_user.id) == 2
    assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 2


@pytest.mark.asyncio
async def test_add_for_unknown_user_raises(session):
    with pytest.raises(ValueError):
        await knowledge_repo.add_manual_correction(session, "nobody", "q", "a")


@pytest.mark.asyncio
async def test_remove_checks_ownership(session, user, other_user):
    entry = await knowledge_repo.add_manual_correction(session, USER_ID, "q", "a")

    assert await knowledge_repo.remove(
        session, KnowledgeKind.MANUAL_CORRECTION, entry.id, other_user.id
    ) is False
    assert await knowledge_repo.remove(
        session, KnowledgeKind.MANUAL_CORRECTION, uuid.uuid4(), USER_ID
    ) is False
    assert await knowledge_repo.remove(
        session, KnowledgeKind.MANUAL_CORRECTION, entry.id, USER_ID
    ) is True
    assert await knowledge_repo.count(session, KnowledgeKind.MANUAL_CORRECTION, USER_ID) == 0


@pytest.mark.asyncio
async def test_upsert_media_is_idempotent(session, user):
    data = {"external_media_id": "m_1", "caption": "Bolo de cenoura saindo!", "media_type": "IMAGE"}
    first, created = await knowledge_repo.upsert_media_entry(session, USER_ID, data)
    assert created is True

    second, created = await knowledge_repo.upsert_media_entry(
        session, USER_ID, {**data, "caption": "Bolo de cenoura com cobertura"}
    )
    assert created is False
    assert second.id == first.id
    assert second.caption == "Bolo de cenoura com cobertura"
    assert await knowledge_repo.count(session, KnowledgeKind.MEDIA, USER_ID) == 1


@pytest.mark.asyncio
async def test_upsert_interaction_fills_in_owner_reply(session, user):
    data = {
        "external_id": "c_9",
        "channel_type": ChannelType.PUBLIC_COMMENT.value,
        "user_message": "Vocês abrem domingo?",
    }
    entry, _ = await knowledge_repo.upsert_interaction(session, USER_ID, data)
    assert entry.my_response is None

    entry, created = await knowledge_repo.upsert_interaction(
        session, USER_ID, {**data, "my_response": "Abrimos sim, das 8h às 12h!"}
    )
    assert created is False
    assert entry.my_response == "Abrimos sim, das 8h às 12h!"


@pytest.mark.asyncio
async def test_promote_interaction_creates_golden_correction(session, user):
    answered = await knowledge_repo.add_interaction(session, USER_ID, {
        "channel_type": ChannelType.PRIVATE_DM.value,
        "user_message": "Tem opção sem glúten?",
        "my_response": "Temos o bolo de fubá sem glúten!",
    })
    unanswered = await knowledge_repo.add_interaction(session, USER_ID, {
        "channel_type": ChannelType.PRIVATE_DM.value,
        "user_message": "Oi",
    })

    correction = await knowledge_repo.promote_interaction(session, answered.id, USER_ID)
    assert correction.source == CorrectionSource.PROMOTED.value
    assert correction.question == "Tem opção sem glúten?"
    assert correction.answer == "Temos o bolo de fubá sem glúten!"
    assert await knowledge_repo.promote_interaction(session, unanswered.id, USER_ID) is None


@pytest.mark.asyncio
async def test_update_manual_correction_is_owner_scoped(session, user, other_user):
    entry = await knowledge_repo.add_manual_correction(session, USER_ID, "Qual o preço?", "R$40")

    assert await knowledge_repo.update_manual_correction(
        session, entry.id, other_user.id, answer="R$0"
    ) is None
    updated = await knowledge_repo.update_manual_correction(session, entry.id, USER_ID, answer="R$50")
    assert updated.answer == "R$50"
    assert updated.question == "Qual o preço?"


@pytest.mark.asyncio
async def test_stats_and_cap_violations(session, user):
    await knowledge_repo.add_manual_correction(session, USER_ID, "q", "a")
    await knowledge_repo.add_media_entry(session, USER_ID, {"external_media_id": "m_1"})

    stats = await knowledge_repo.get_stats(session, USER_ID)
    assert stats.manual_corrections.count == 1
    assert stats.manual_corrections.limit == knowledge_repo.MANUAL_CORRECTION_CAP
    assert stats.media_library.count == 1
    assert stats.interactions.count == 0
    assert await knowledge_repo.find_cap_violations(session) == []
