"""Personality synthesis — writes the user's system prompt from their knowledge."""
import logging
import re
from collections import Counter
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import guidelines as guidelines_repo
from db.repositories import knowledge as knowledge_repo
from db.repositories import observability as obs_repo
from db.repositories import settings as settings_repo
from db.repositories import users as users_repo
from pipeline import generation
from pipeline.prompt_composer import order_guidelines
from schemas.messages import KnowledgeKind
from schemas.results import ActionResult, ErrorCode
from schemas.settings import SettingsValues

logger = logging.getLogger(__name__)

MIN_PERSONALITY_SOURCES = 5
MIN_CAPTION_CHARS = 20
MAX_PUBLIC_RESPONSES = 50
MAX_GOLDEN_RULES = 20
CAPTIONS_IN_PROMPT = 10
RESPONSES_IN_PROMPT = 10

_GREETINGS = [
    re.compile(r"^(olá|oi|ei|hey|fala|e aí|boa noite|bom dia|boa tarde)", re.IGNORECASE),
    re.compile(r"^(hello|hi|hey|what's up)", re.IGNORECASE),
]
_SIGNOFFS = [
    re.compile(r"(forte abraço|abraço|tmj|valeu|até mais|beijos|bjs)", re.IGNORECASE),
    re.compile(r"(obrigad[oa]|gratidão|thanks|thank you|cheers)", re.IGNORECASE),
]
_EMOJI = re.compile("[\U0001F300-\U0001FAFF☀-➿]")
_HASHTAG = re.compile(r"#\w+")


def extract_patterns(texts: Iterable[str]) -> dict:
    """Greetings, sign-offs, emojis and hashtags the owner actually uses."""
    greetings, signoffs, emojis, hashtags = Counter(), Counter(), Counter(), Counter()
    for text in texts:
        if not text:
            continue
        stripped = text.strip()
        for pattern in _GREETINGS:
            match = pattern.search(stripped)
            if match:
                greetings[match.group(0).lower()] += 1
        for pattern in _SIGNOFFS:
            match = pattern.search(stripped)
            if match:
                signoffs[match.group(0).lower()] += 1
        emojis.update(_EMOJI.findall(stripped))
        hashtags.update(tag.lower() for tag in _HASHTAG.findall(stripped))
    return {
        "greetings": [g for g, _ in greetings.most_common(5)],
        "signoffs": [s for s, _ in signoffs.most_common(5)],
        "emojis": [e for e, _ in emojis.most_common(10)],
        "hashtags": [h for h, _ in hashtags.most_common(10)],
    }


def build_material(
    guidelines: list[str],
    captions: list[str],
    public_responses: list[str],
    golden_rules: list[str],
    patterns: dict,
) -> str:
    """Assemble the analysis input; guidelines go first."""
    parts = []
    if guidelines:
        parts.append(
            "## PRIORITY GUIDELINES (must be followed in every reply)\n" + "\n".join(guidelines)
        )
    if captions:
        parts.append(
            f"## POST CAPTIONS ({len(captions)} total)\n"
            + "\n---\n".join(captions[:CAPTIONS_IN_PROMPT])
        )
    if public_responses:
        parts.append(
            f"## PUBLIC REPLIES ({len(public_responses)} total)\n"
            + "\n".join(f"- {r}" for r in public_responses[:RESPONSES_IN_PROMPT])
        )
    if golden_rules:
        parts.append(f"## GOLDEN CORRECTIONS ({len(golden_rules)})\n" + "\n\n".join(golden_rules))
    observed = [f"{name}: {', '.join(values)}" for name, values in patterns.items() if values]
    if observed:
        parts.append("## OBSERVED PATTERNS\n" + "\n".join(observed))
    return "\n\n".join(parts)


async def generate_personality(session: AsyncSession, user_id: str) -> ActionResult:
    """Synthesize and store the user's system prompt override."""
    user = await users_repo.get_user(session, user_id)
    if user is None or not user.is_connected:
        return ActionResult.fail(
            ErrorCode.NOT_CONNECTED,
            "Connect an Instagram account before generating a personality.",
        )

    guidelines = [
        f"{i}. [Priority {g.priority}] {g.rule}"
        for i, g in enumerate(order_guidelines(await guidelines_repo.list_active(session, user_id)), start=1)
    ]
    media = await knowledge_repo.list_recent(
        session, KnowledgeKind.MEDIA, user_id, knowledge_repo.MEDIA_LIBRARY_CAP
    )
    captions = [m.caption.strip() for m in media if m.caption and len(m.caption.strip()) > MIN_CAPTION_CHARS]
    interactions = await knowledge_repo.list_recent(
        session, KnowledgeKind.INTERACTION, user_id, knowledge_repo.INTERACTION_CAP
    )
    public_responses = [i.my_response for i in interactions if i.my_response][:MAX_PUBLIC_RESPONSES]
    corrections = await knowledge_repo.list_recent(
        session, KnowledgeKind.MANUAL_CORRECTION, user_id, MAX_GOLDEN_RULES
    )
    golden_rules = [f'Q: "{c.question}"\nA: "{c.answer}"' for c in corrections]

    sources = len(guidelines) + len(captions) + len(public_responses) + len(golden_rules)
    if sources < MIN_PERSONALITY_SOURCES:
        return ActionResult.fail(
            ErrorCode.INSUFFICIENT_DATA,
            f"Only {sources} knowledge items found; at least {MIN_PERSONALITY_SOURCES} are needed. "
            "Sync the account or add guidelines and corrections first.",
        )

    patterns = extract_patterns(captions + public_responses)
    material = build_material(guidelines, captions, public_responses, golden_rules, patterns)
    result = await generation.generate_system_prompt(material)
    await obs_repo.log_generation(session, "personality", result, user_id=user_id)
    if not result.success:
        return ActionResult.fail(result.error_code, result.error or "Generation failed.")

    await settings_repo.update_user_settings(
        session, user_id, SettingsValues(system_prompt=result.response)
    )
    logger.info("Stored synthesized system prompt for user %s (%d sources)", user_id, sources)
    return ActionResult(
        success=True,
        message=f"Personality generated from {sources} knowledge items.",
        suggested_response=result.response,
    )
