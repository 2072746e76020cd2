"""Prompt composer — builds the drafting prompt from settings and knowledge.

Pure: no I/O, no clock. Callers pass knowledge lists newest first and
guidelines in insertion order.

Layout of the instruction:
  1. base system prompt (+ tone)
  2. priority guidelines, highest priority first
  3. golden corrections (Q/A examples)
  4. media captions
  5. past interactions
and the message block (what to answer, preceded by the earlier DMs with the
same sender) goes in the user turn.

The base prompt and the message block are always kept. The remaining size
budget is filled in the order above, so when it runs out the interactions go
first, then media, then corrections, then the lowest-priority guidelines.
Inside a section the oldest entries are dropped first.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from schemas.settings import EffectiveSettings

DEFAULT_MAX_CHARS = 12000
DEFAULT_MAX_CORRECTIONS = 10
DEFAULT_MAX_MEDIA = 10
DEFAULT_MAX_INTERACTIONS = 10
DEFAULT_MAX_HISTORY = 10

CAPTION_PREVIEW_CHARS = 300


@dataclass
class ComposedPrompt:
    instruction: str
    message: str
    guidelines_used: int = 0
    corrections_used: int = 0
    media_used: int = 0
    interactions_used: int = 0
    truncated: bool = False

    @property
    def text(self) -> str:
        return f"{self.instruction}\n\n{self.message}"


def _clip(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _base_section(settings: EffectiveSettings) -> str:
    base = settings.system_prompt.strip()
    if settings.ai_tone:
        base += f"\n\nTone of voice: {settings.ai_tone.strip()}"
    return base


def order_guidelines(guidelines: Sequence) -> list:
    """Priority descending; equal priorities keep their insertion order."""
    return sorted(guidelines, key=lambda g: -g.priority)


def _guideline_lines(guidelines: Sequence) -> list[str]:
    return [
        f"{i}. [Priority {g.priority}] {g.rule.strip()}"
        for i, g in enumerate(order_guidelines(guidelines), start=1)
    ]


def _correction_lines(corrections: Sequence) -> list[str]:
    return [
        f'Q: "{_clip(c.question, 500)}"\nA: "{_clip(c.answer, 500)}"'
        for c in corrections
    ]


def _media_lines(media: Sequence) -> list[str]:
    lines = []
    for entry in media:
        caption = _clip(entry.caption, CAPTION_PREVIEW_CHARS)
        if not caption and not entry.video_transcription and not entry.image_description:
            continue
        line = f"- [{entry.media_type or 'POST'}] {caption}"
        if entry.video_transcription:
            line += f"\n  Transcription: {_clip(entry.video_transcription, CAPTION_PREVIEW_CHARS)}"
        if entry.image_description:
            line += f"\n  Image: {_clip(entry.image_description, 200)}"
        lines.append(line)
    return lines


def _interaction_lines(interactions: Sequence) -> list[str]:
    lines = []
    for entry in interactions:
        who = f"@{entry.sender_username}" if entry.sender_username else (entry.sender_name or "Follower")
        channel = "comment" if entry.channel_type == "public_comment" else "DM"
        line = f'- ({channel}) {who}: "{_clip(entry.user_message, 300)}"'
        if entry.my_response:
            line += f'\n  You: "{_clip(entry.my_response, 300)}"'
        lines.append(line)
    return lines


def _history_lines(history: Sequence) -> list[str]:
    lines = []
    for entry in reversed(history):
        who = entry.sender_name or (f"@{entry.sender_username}" if entry.sender_username else "Follower")
        lines.append(f"[{who}]: {_clip(entry.content, 300)}")
        reply = entry.draft.final_response if entry.draft is not None else None
        if reply:
            lines.append(f"[You]: {_clip(reply, 300)}")
    return lines


def message_section(
    message, previous_response: Optional[str] = None, history: Sequence = ()
) -> str:
    """The user-turn block describing the message to answer.

    ``history`` holds earlier DMs from the same sender, newest first; it is
    shown oldest first and only for direct messages.
    """
    is_comment = message.type == "comment"
    parts = []
    lines = [] if is_comment else _history_lines(history)
    if lines:
        parts.append("## CONVERSATION SO FAR (earlier messages with this person, oldest first)")
        parts.extend(lines)
        parts.append(
            "Continue this conversation: do not repeat what was already said and stay "
            "consistent with your earlier replies.\n"
        )
    parts.append("## MESSAGE TO ANSWER")
    parts.append(f"Channel: {'public comment on a post' if is_comment else 'direct message'}")
    sender = message.sender_name or ""
    if message.sender_username:
        sender = f"{sender} (@{message.sender_username})".strip()
    if sender:
        parts.append(f"From: {sender}")
    if message.post_caption:
        parts.append(f"Post caption: {_clip(message.post_caption, CAPTION_PREVIEW_CHARS)}")
    if message.parent_comment_text:
        author = f"@{message.parent_comment_username}" if message.parent_comment_username else "someone"
        parts.append(f'In reply to a comment by {author}: "{_clip(message.parent_comment_text, 300)}"')
    if message.media_type and not message.content:
        parts.append(f"The message is a {message.media_type} attachment with no text.")
    parts.append(f'Message: "{message.content or ""}"')
    if previous_response:
        parts.append(
            f'Your previous suggestion was: "{previous_response}". '
            "Write a different reply that still follows every guideline."
        )
    return "\n".join(parts)


def _fill(header: str, lines: list[str], budget: int) -> tuple[Optional[str], int]:
    """Keep as many leading lines as fit in ``budget`` characters."""
    used = len(header) + 2
    kept = []
    for line in lines:
        if used + len(line) + 1 > budget:
            break
        kept.append(line)
        used += len(line) + 1
    if not kept:
        return None, 0
    return header + "\n" + "\n".join(kept), len(kept)


def compose_prompt(
    settings: EffectiveSettings,
    message,
    guidelines: Sequence = (),
    corrections: Sequence = (),
    media: Sequence = (),
    interactions: Sequence = (),
    previous_response: Optional[str] = None,
    history: Sequence = (),
    max_chars: int = DEFAULT_MAX_CHARS,
    max_corrections: int = DEFAULT_MAX_CORRECTIONS,
    max_media: int = DEFAULT_MAX_MEDIA,
    max_interactions: int = DEFAULT_MAX_INTERACTIONS,
) -> ComposedPrompt:
    """Assemble the drafting prompt for ``message`` within ``max_chars``."""
    base = _base_section(settings)
    question = message_section(message, previous_response, history[:DEFAULT_MAX_HISTORY])

    candidates = [
        ("guidelines", "## PRIORITY GUIDELINES (follow in every reply)", _guideline_lines(guidelines)),
        ("corrections", "## GOLDEN ANSWERS (human-approved replies, imitate them)",
         _correction_lines(corrections[:max_corrections])),
        ("media", "## RECENT POSTS", _media_lines(media[:max_media])),
        ("interactions", "## PAST CONVERSATIONS", _interaction_lines(interactions[:max_interactions])),
    ]

    remaining = max_chars - len(base) - len(question) - 2
    sections = [base]
    used = {}
    truncated = False
    for name, header, lines in candidates:
        block, kept = _fill(header, lines, remaining) if remaining > 0 else (None, 0)
        if kept < len(lines):
            truncated = True
        if block:
            sections.append(block)
            remaining -= len(block) + 2
        used[name] = kept

    return ComposedPrompt(
        instruction="\n\n".join(sections),
        message=question,
        guidelines_used=used["guidelines"],
        corrections_used=used["corrections"],
        media_used=used["media"],
        interactions_used=used["interactions"],
        truncated=truncated,
    )
