"""Webhook ingestion — normalizes Instagram webhook deliveries into messages.

Payload shape (authentication/verification happens upstream):

    {"object": "instagram",
     "entry": [{"id": "<account id>",
                "changes": [{"field": "comments", "value": {...}}],
                "messaging": [{"sender": {"id"}, "recipient": {"id"},
                               "message": {"mid", "text", "attachments", "is_echo"}}]}]}

Ingestion is idempotent on the external id: redelivered events are ignored.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InboundMessage, User
from db.repositories import messages as messages_repo
from db.repositories import users as users_repo
from pipeline import drafting
from schemas.messages import MessageType
from schemas.results import DraftOutcome
from tools import instagram_tools

logger = logging.getLogger(__name__)

COMMENT_FIELDS = ("comments", "mentions", "live_comments")


def normalize_comment(user: User, value: Dict[str, Any]) -> Optional[dict]:
    """Map a ``comments`` change value to InboundMessage columns (None to skip)."""
    comment_id = value.get("id")
    text = value.get("text")
    if not comment_id or text is None:
        return None
    sender = value.get("from") or {}
    if sender.get("id") and sender.get("id") == user.instagram_account_id:
        return None
    media = value.get("media") or {}
    return {
        "user_id": user.id,
        "external_id": comment_id,
        "type": MessageType.COMMENT.value,
        "sender_id": sender.get("id"),
        "sender_name": sender.get("username"),
        "sender_username": sender.get("username"),
        "content": text,
        "post_id": media.get("id"),
        "parent_comment_id": value.get("parent_id"),
    }


def normalize_dm(user: User, event: Dict[str, Any]) -> Optional[dict]:
    """Map a ``messaging`` event to InboundMessage columns (None to skip)."""
    message = event.get("message") or {}
    mid = message.get("mid")
    if not mid or message.get("is_echo"):
        return None
    sender_id = (event.get("sender") or {}).get("id")
    if sender_id and sender_id == user.instagram_account_id:
        return None
    attachments = message.get("attachments") or []
    first = attachments[0] if attachments else {}
    return {
        "user_id": user.id,
        "external_id": mid,
        "type": MessageType.DM.value,
        "sender_id": sender_id,
        "content": message.get("text") or "",
        "media_url": (first.get("payload") or {}).get("url"),
        "media_type": first.get("type"),
    }


async def _enrich(user: User, data: dict) -> dict:
    """Best-effort lookups for the parent comment and DM sender profile."""
    token = user.instagram_access_token
    if not token:
        return data
    if data.get("parent_comment_id"):
        parent = await asyncio.to_thread(
            instagram_tools.instagram_get_comment, data["parent_comment_id"], token
        )
        if not parent.get("error"):
            data["parent_comment_text"] = parent.get("text")
            data["parent_comment_username"] = parent.get("username")
    if data["type"] == MessageType.DM.value and data.get("sender_id"):
        profile = await asyncio.to_thread(
            instagram_tools.instagram_get_user, data["sender_id"], token
        )
        if not profile.get("error"):
            data["sender_name"] = profile.get("name") or profile.get("username")
            data["sender_username"] = profile.get("username")
            data["sender_avatar"] = profile.get("avatar")
    return data


async def ingest_webhook(
    session: AsyncSession, payload: Dict[str, Any], enrich: bool = True
) -> List[InboundMessage]:
    """Store the messages carried by one webhook delivery; returns only new ones."""
    if payload.get("object") != "instagram":
        logger.info("Ignoring webhook for object=%r", payload.get("object"))
        return []

    created: List[InboundMessage] = []
    for entry in payload.get("entry", []):
        account_id = entry.get("id")
        user = await users_repo.get_by_instagram_account(session, account_id) if account_id else None
        if user is None:
            logger.warning("Webhook entry for unknown Instagram account %s", account_id)
            continue

        candidates = []
        for change in entry.get("changes", []):
            if change.get("field") in COMMENT_FIELDS:
                candidates.append(normalize_comment(user, change.get("value") or {}))
        for event in entry.get("messaging", []):
            candidates.append(normalize_dm(user, event))

        for data in candidates:
            if data is None:
                continue
            if await messages_repo.get_by_external_id(session, data["external_id"]) is not None:
                continue
            if enrich:
                data = await _enrich(user, data)
            message = await messages_repo.insert_if_new(session, data)
            if message is not None:
                created.append(message)
                logger.info("Ingested %s %s for user %s", message.type, message.external_id, user.id)
    return created


async def process_webhook(session: AsyncSession, payload: Dict[str, Any]) -> List[DraftOutcome]:
    """Ingest a delivery, then draft and route every new message."""
    outcomes = []
    for message in await ingest_webhook(session, payload):
        outcomes.append(await drafting.draft_message(session, message.user_id, message.id))
    return outcomes
