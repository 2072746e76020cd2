"""Prompt composer: section order, guideline priority and the size budget."""
from types import SimpleNamespace

from pipeline.prompt_composer import compose_prompt, order_guidelines
from schemas.settings import EffectiveSettings, OperationMode

SETTINGS = EffectiveSettings(
    operation_mode=OperationMode.MANUAL,
    confidence_threshold=80,
    system_prompt="Você é a Ana, dona da Café da Ana.",
    ai_tone="caloroso e direto",
)


def _message(**overrides):
    fields = dict(
        type="comment",
        content="Qual o preço?",
        sender_name=None,
        sender_username="joao",
        post_caption="Bolo de cenoura saindo do forno",
        parent_comment_text=None,
        parent_comment_username=None,
        media_type=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _guideline(rule, priority):
    return SimpleNamespace(rule=rule, priority=priority)


def _correction(q, a):
    return SimpleNamespace(question=q, answer=a)


def _interaction(text, reply=None):
    return SimpleNamespace(
        sender_username="maria", sender_name=None, channel_type="public_comment",
        user_message=text, my_response=reply,
    )


def _media(caption):
    return SimpleNamespace(
        caption=caption, media_type="IMAGE", video_transcription=None, image_description=None
    )


def test_guidelines_sorted_by_priority_keeping_insertion_order_on_ties():
    rules = [_guideline("a", 2), _guideline("b", 5), _guideline("c", 2), _guideline("d", 5)]
    assert [g.rule for g in order_guidelines(rules)] == ["b", "d", "a", "c"]


def test_sections_appear_in_order():
    prompt = compose_prompt(
        SETTINGS,
        _message(),
        guidelines=[_guideline("Nunca prometa prazo de entrega", 5), _guideline("Use emoji", 1)],
        corrections=[_correction("Qual o preço?", "R$50")],
        media=[_media("Bolo de cenoura saindo do forno")],
        interactions=[_interaction("Que lindo!", "Obrigada!")],
    )

    text = prompt.instruction
    assert text.startswith("Você é a Ana")
    assert "Tone of voice: caloroso e direto" in text
    assert "1. [Priority 5] Nunca prometa prazo de entrega" in text
    assert "2. [Priority 1] Use emoji" in text
    positions = [
        text.index("## PRIORITY GUIDELINES"),
        text.index("## GOLDEN ANSWERS"),
        text.index("## RECENT POSTS"),
        text.index("## PAST CONVERSATIONS"),
    ]
    assert positions == sorted(positions)
    assert 'Q: "Qual o preço?"\nA: "R$50"' in text
    assert 'Message: "Qual o preço?"' in prompt.message
    assert prompt.truncated is False


def test_empty_knowledge_still_has_base_and_message():
    prompt = compose_prompt(SETTINGS, _message(type="dm", post_caption=None))
    assert "## PRIORITY GUIDELINES" not in prompt.instruction
    assert "Channel: direct message" in prompt.message
    assert prompt.guidelines_used == 0


def test_knowledge_limits_are_applied():
    corrections = [_correction(f"q{i}", f"a{i}") for i in range(15)]
    prompt = compose_prompt(SETTINGS, _message(), corrections=corrections, max_corrections=4)
    assert prompt.corrections_used == 4
    assert 'Q: "q3"' in prompt.instruction
    assert 'Q: "q4"' not in prompt.instruction


def test_budget_drops_interactions_before_guidelines():
    guidelines = [_guideline("Seja educada " + "x" * 80, 3) for _ in range(3)]
    interactions = [_interaction("y" * 250) for _ in range(5)]
    base_only = compose_prompt(SETTINGS, _message())
    with_guidelines = compose_prompt(SETTINGS, _message(), guidelines=guidelines)
    budget = len(with_guidelines.text) + 50

    prompt = compose_prompt(
        SETTINGS, _message(), guidelines=guidelines, interactions=interactions, max_chars=budget
    )

    assert prompt.guidelines_used == 3
    assert prompt.interactions_used == 0
    assert prompt.truncated is True
    assert len(prompt.text) <= budget
    assert len(base_only.text) < len(prompt.text)


def test_budget_drops_lowest_priority_guidelines_first():
    guidelines = [_guideline("low " + "x" * 100, 1), _guideline("high " + "x" * 100, 5)]
    minimal = compose_prompt(SETTINGS, _message())
    budget = len(minimal.text) + 200

    prompt = compose_prompt(SETTINGS, _message(), guidelines=guidelines, max_chars=budget)

    assert prompt.guidelines_used == 1
    assert "high" in prompt.instruction
    assert "low " not in prompt.instruction
    assert len(prompt.text) <= budget


def test_base_and_message_are_kept_even_over_budget():
    prompt = compose_prompt(
        SETTINGS, _message(), guidelines=[_guideline("rule", 3)], max_chars=10
    )
    assert prompt.instruction.startswith("Você é a Ana")
    assert 'Message: "Qual o preço?"' in prompt.message
    assert prompt.guidelines_used == 0


def test_reply_context_and_previous_suggestion():
    prompt = compose_prompt(
        SETTINGS,
        _message(parent_comment_text="Tem sem glúten?", parent_comment_username="maria"),
        previous_response="Custa R$40.",
    )
    assert 'In reply to a comment by @maria: "Tem sem glúten?"' in prompt.message
    assert 'Your previous suggestion was: "Custa R$40."' in prompt.message


def _earlier_dm(content, reply=None):
    return SimpleNamespace(
        sender_name="João", sender_username="joao", content=content,
        draft=SimpleNamespace(final_response=reply) if reply else None,
    )


def test_dm_history_precedes_the_message_oldest_first():
    history = [_earlier_dm("Tem de chocolate?"), _earlier_dm("Oi, vocês entregam?", "Entregamos sim!")]
    prompt = compose_prompt(
        SETTINGS, _message(type="dm", post_caption=None), history=history, max_chars=200
    )

    text = prompt.message
    assert "## CONVERSATION SO FAR" in text
    assert text.index("[João]: Oi, vocês entregam?") < text.index("[You]: Entregamos sim!")
    assert text.index("[You]: Entregamos sim!") < text.index("[João]: Tem de chocolate?")
    assert text.index("[João]: Tem de chocolate?") < text.index("## MESSAGE TO ANSWER")


def test_comments_carry_no_dm_history():
    prompt = compose_prompt(SETTINGS, _message(), history=[_earlier_dm("Oi")])
    assert "CONVERSATION SO FAR" not in prompt.message
