"""Sync orchestrator — pulls posts and comments for a connected account.

``sync_account`` is an async generator of SyncEvent: progress events with a
monotonic 0-100 value, then exactly one terminal ``complete`` or ``error``.

Per post: the media entry is upserted into the media library, then its
comments (with one level of replies) are classified. Comments written by the
account owner are never treated as inbound. A follower comment becomes an
InteractionEntry (with the owner's reply as ``my_response`` when there is
one) and, while still unanswered, a pending InboundMessage. A message queued
by an earlier sync that the owner has since answered is closed as approved.
Everything is keyed by external id, so re-running a sync creates no
duplicates. Each post is committed on its own.
"""
import asyncio
import logging
import os
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from dateutil.parser import isoparse
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User
from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from db.repositories import users as users_repo
from schemas.messages import ChannelType, MessageStatus, MessageType
from schemas.results import ErrorCode
from schemas.sync import SyncComplete, SyncError, SyncEvent, SyncProgress
from tools import instagram_tools

logger = logging.getLogger(__name__)

MAX_POSTS = 50
MAX_COMMENTS_PER_POST = 50
MEDIA_PAGE_SIZE = 25
POST_CONTEXT_CHARS = 200


class PostSyncError(Exception):
    """A single post could not be synced; the run continues without it."""


def _timeout() -> float:
    return float(os.environ.get("INSTAGRAM_TIMEOUT_SECONDS", "15")) * 4


async def _call(fn, *args) -> Dict[str, Any]:
    """Run a blocking tool call in a thread under the sync timeout."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=_timeout())
    except asyncio.TimeoutError:
        return {"error": f"{fn.__name__} timed out", "error_code": "TIMEOUT"}


def _error_code(result: Dict[str, Any]) -> ErrorCode:
    return ErrorCode.TIMEOUT if result.get("error_code") == "TIMEOUT" else ErrorCode.API_ERROR


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return isoparse(value)
    except ValueError:
        logger.debug("Unparseable Graph API timestamp %r", value)
        return None


def is_owner(item: Dict[str, Any], account_id: Optional[str], username: Optional[str]) -> bool:
    """True when a comment or reply was written by the connected account."""
    author = item.get("from") or {}
    if account_id and author.get("id") == account_id:
        return True
    name = author.get("username") or item.get("username")
    return bool(username and name and name.lower() == username.lower())


def _post_context(caption: str) -> str:
    caption = caption.strip()
    if len(caption) <= POST_CONTEXT_CHARS:
        return caption
    return caption[:POST_CONTEXT_CHARS].rstrip() + "..."


class _Counts:
    def __init__(self) -> None:
        self.media = 0
        self.interactions = 0
        self.messages = 0


async def _close_answered(
    session: AsyncSession, user: User, external_id: str, owner_reply: Dict[str, Any]
) -> None:
    """A comment queued by an earlier sync that the owner has since answered on Instagram."""
    message = await messages_repo.get_by_external_id(session, external_id)
    if message is None or message.user_id != user.id:
        return
    if not await messages_repo.transition_status(session, message.id, MessageStatus.APPROVED):
        return
    if message.draft is not None:
        message.draft.final_response = owner_reply.get("text")
        message.draft.was_approved = True
        await session.flush()
    logger.info("Message %s was answered on Instagram, closing it", message.id)


async def _store_follower_comment(
    session: AsyncSession,
    user: User,
    item: Dict[str, Any],
    comment: Dict[str, Any],
    owner_reply: Optional[Dict[str, Any]],
    counts: _Counts,
    parent: Optional[Dict[str, Any]] = None,
) -> None:
    caption = item.get("caption") or ""
    username = comment.get("username") or (comment.get("from") or {}).get("username")
    await knowledge_repo.upsert_interaction(session, user.id, {
        "external_id": comment["id"],
        "channel_type": ChannelType.PUBLIC_COMMENT.value,
        "sender_name": username,
        "sender_username": username,
        "user_message": comment.get("text") or "",
        "my_response": owner_reply.get("text") if owner_reply else None,
        "post_context": _post_context(caption),
        "interacted_at": _parse_timestamp(comment.get("timestamp")),
    })
    counts.interactions += 1

    if owner_reply is not None:
        await _close_answered(session, user, comment["id"], owner_reply)
        return
    message = await messages_repo.insert_if_new(session, {
        "user_id": user.id,
        "external_id": comment["id"],
        "type": MessageType.COMMENT.value,
        "sender_id": (comment.get("from") or {}).get("id"),
        "sender_name": username,
        "sender_username": username,
        "content": comment.get("text") or "",
        "post_id": item.get("id"),
        "post_permalink": item.get("permalink"),
        "post_caption": caption or None,
        "post_thumbnail_url": item.get("thumbnail_url") or item.get("media_url"),
        "parent_comment_id": parent.get("id") if parent else None,
        "parent_comment_text": parent.get("text") if parent else None,
        "parent_comment_username": parent.get("username") if parent else None,
    })
    if message is not None:
        counts.messages += 1


async def _sync_post(
    session: AsyncSession, user: User, username: Optional[str], item: Dict[str, Any], counts: _Counts
) -> None:
    # API call first: the knowledge writes below take the per-user lock
    comments = await _call(
        instagram_tools.instagram_list_comments,
        item["id"],
        user.instagram_access_token,
        MAX_COMMENTS_PER_POST,
    )
    await knowledge_repo.upsert_media_entry(session, user.id, {
        "external_media_id": item["id"],
        "caption": item.get("caption"),
        "media_type": item.get("media_type"),
        "media_url": item.get("media_url"),
        "thumbnail_url": item.get("thumbnail_url"),
        "permalink": item.get("permalink"),
        "posted_at": _parse_timestamp(item.get("timestamp")),
    })
    counts.media += 1
    if comments.get("error"):
        raise PostSyncError(f"comments for post {item['id']}: {comments['error']}")

    account_id = user.instagram_account_id
    for comment in comments.get("items", []):
        if is_owner(comment, account_id, username):
            continue
        replies = comment.get("replies", [])
        owner_replies = [i for i, r in enumerate(replies) if is_owner(r, account_id, username)]
        owner_reply = replies[owner_replies[0]] if owner_replies else None
        await _store_follower_comment(session, user, item, comment, owner_reply, counts)

        # follower replies in the thread, answered if the owner spoke after them
        for index, reply in enumerate(replies):
            if is_owner(reply, account_id, username) or not reply.get("id"):
                continue
            later = [i for i in owner_replies if i > index]
            answer = replies[later[0]] if later else None
            await _store_follower_comment(
                session, user, item, reply, answer, counts, parent=comment
            )


async def sync_account(session: AsyncSession, user_id: str) -> AsyncIterator[SyncEvent]:
    """Sync posts, comments and replies for ``user_id``, yielding progress."""
    yield SyncProgress(progress=0, step="Starting sync")

    user = await users_repo.get_user(session, user_id)
    if user is None or not user.is_connected:
        yield SyncError(
            error_code=ErrorCode.NOT_CONNECTED,
            message="Instagram account is not connected.",
        )
        return

    try:
        profile = await _call(instagram_tools.instagram_get_profile, user.instagram_access_token)
        if profile.get("error"):
            yield SyncError(error_code=_error_code(profile), message=f"Profile fetch failed: {profile['error']}")
            return
        username = profile.get("username") or user.instagram_username
        if username and username != user.instagram_username:
            user.instagram_username = username
            await session.commit()
        yield SyncProgress(progress=5, step=f"Profile @{username}")

        errors: List[str] = []
        media: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while len(media) < MAX_POSTS:
            page = await _call(
                instagram_tools.instagram_list_media,
                user.instagram_access_token,
                cursor,
                MEDIA_PAGE_SIZE,
            )
            if page.get("error"):
                if not media:
                    yield SyncError(error_code=_error_code(page), message=f"Media fetch failed: {page['error']}")
                    return
                errors.append(f"media page after {cursor}: {page['error']}")
                break
            media.extend(page.get("items", []))
            cursor = page.get("next")
            if not cursor:
                break
        media = media[:MAX_POSTS]
        yield SyncProgress(progress=15, step=f"Found {len(media)} posts")

        counts = _Counts()
        total = len(media)
        for index, item in enumerate(media):
            try:
                await _sync_post(session, user, username, item, counts)
            except PostSyncError as exc:
                logger.warning("Skipping post during sync for user %s: %s", user_id, exc)
                errors.append(str(exc))
            # releases the per-user knowledge lock before the next post's API calls
            await session.commit()
            yield SyncProgress(
                progress=20 + (75 * (index + 1)) // total,
                step=f"Processed post {index + 1}/{total}",
            )
    except Exception as exc:
        logger.exception("Sync failed for user %s", user_id)
        await session.rollback()
        yield SyncError(message=f"Sync failed: {exc}")
        return

    logger.info(
        "Sync complete for user %s: media=%d interactions=%d messages=%d errors=%d",
        user_id, counts.media, counts.interactions, counts.messages, len(errors),
    )
    yield SyncComplete(
        media_count=counts.media,
        interaction_count=counts.interactions,
        message_count=counts.messages,
        errors=errors,
    )
