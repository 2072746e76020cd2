"""Instagram Graph API tools.

Calls the Instagram Graph API directly (no official Python SDK). Every
function returns a dict; failures come back as ``{"error": ..., "error_code": ...}``
instead of raising, with ``error_code`` one of TIMEOUT / API_ERROR.
"""
import os
from typing import Any, Dict, List, Optional

import requests


GRAPH_BASE = "https://graph.instagram.com/v21.0"

COMMENT_FIELDS = "id,text,username,timestamp,from{id,username},parent_id"
MEDIA_FIELDS = "id,caption,media_type,media_url,thumbnail_url,timestamp,permalink"

# Graph API error codes with an actionable explanation
_FRIENDLY_ERRORS = {
    4: "Instagram API rate limit reached. Wait a few minutes and try again.",
    10: "Missing permission to send messages. Reconnect the account and grant messaging access.",
    100: "Invalid recipient or parameters. The conversation may have expired.",
    190: "Access token expired or invalid. Reconnect the Instagram account.",
    551: "This person is not available to receive messages right now.",
}


def _timeout() -> int:
    return int(os.environ.get("INSTAGRAM_TIMEOUT_SECONDS", "15"))


def _error_message(resp: requests.Response) -> str:
    """Extract a readable message from a Graph API error response."""
    try:
        error = resp.json().get("error", {})
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"
    code = error.get("code")
    if code in _FRIENDLY_ERRORS:
        return _FRIENDLY_ERRORS[code]
    if error.get("type") == "OAuthException":
        return _FRIENDLY_ERRORS[190]
    return error.get("message") or f"HTTP {resp.status_code}"


def _failure(exc: Exception, **extra) -> Dict[str, Any]:
    if isinstance(exc, requests.Timeout):
        return {**extra, "error": f"Instagram API timed out: {exc}", "error_code": "TIMEOUT"}
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return {**extra, "error": _error_message(exc.response), "error_code": "API_ERROR"}
    return {**extra, "error": str(exc), "error_code": "API_ERROR"}


def instagram_send_message(
    account_id: str, recipient_id: str, text: str, access_token: str
) -> Dict[str, Any]:
    """Send a direct message to an Instagram user.

    Args:
        account_id: The connected Instagram business account id.
        recipient_id: Instagram-scoped id of the recipient.
        text: Message body.
        access_token: Long-lived token of the connected account.

    Returns:
        Dict with 'success' and 'message_id' on success.
    """
    try:
        resp = requests.post(
            f"{GRAPH_BASE}/{account_id}/messages",
            json={
                "recipient": {"id": recipient_id},
                "message": {"text": text},
                "access_token": access_token,
            },
            timeout=_timeout(),
        )
        resp.raise_for_status()
        data = resp.json()
        return {"success": True, "message_id": data.get("message_id")}
    except Exception as exc:
        return _failure(exc, success=False, message_id=None)


def instagram_reply_to_comment(comment_id: str, text: str, access_token: str) -> Dict[str, Any]:
    """Post a public reply under a comment.

    Returns:
        Dict with 'success' and the new reply's 'comment_id'.
    """
    try:
        resp = requests.post(
            f"{GRAPH_BASE}/{comment_id}/replies",
            data={"message": text, "access_token": access_token},
            timeout=_timeout(),
        )
        resp.raise_for_status()
        data = resp.json()
        return {"success": True, "comment_id": data.get("id")}
    except Exception as exc:
        return _failure(exc, success=False, comment_id=None)


def instagram_get_profile(access_token: str) -> Dict[str, Any]:
    """Fetch the connected account's id, username and biography."""
    try:
        resp = requests.get(
            f"{GRAPH_BASE}/me",
            params={"fields": "id,username,biography", "access_token": access_token},
            timeout=_timeout(),
        )
        resp.raise_for_status()
        data = resp.json()
        return {
            "id": data.get("id"),
            "username": data.get("username", ""),
            "biography": data.get("biography", ""),
        }
    except Exception as exc:
        return _failure(exc, id=None, username="")


def instagram_list_media(
    access_token: str, after: Optional[str] = None, limit: int = 25
) -> Dict[str, Any]:
    """Fetch one page of the account's media, newest first.

    Args:
        after: Pagination cursor returned as 'next' by the previous page.
        limit: Page size.

    Returns:
        Dict with 'items' (list of media dicts) and 'next' (cursor or None).
    """
    try:
        params = {"fields": MEDIA_FIELDS, "limit": limit, "access_token": access_token}
        if after:
            params["after"] = after
        resp = requests.get(f"{GRAPH_BASE}/me/media", params=params, timeout=_timeout())
        resp.raise_for_status()
        data = resp.json()
        paging = data.get("paging", {})
        next_cursor = paging.get("cursors", {}).get("after") if paging.get("next") else None
        return {"items": data.get("data", []), "next": next_cursor}
    except Exception as exc:
        return _failure(exc, items=[], next=None)


def instagram_list_comments(media_id: str, access_token: str, limit: int = 50) -> Dict[str, Any]:
    """Fetch comments on a media item with one level of replies.

    Follows pagination until ``limit`` comments are collected.

    Returns:
        Dict with 'items'; each comment carries a 'replies' list.
    """
    try:
        url: Optional[str] = f"{GRAPH_BASE}/{media_id}/comments"
        params: Optional[Dict[str, Any]] = {
            "fields": f"{COMMENT_FIELDS},replies{{{COMMENT_FIELDS}}}",
            "limit": min(limit, 50),
            "access_token": access_token,
        }
        comments: List[Dict[str, Any]] = []
        while url and len(comments) < limit:
            resp = requests.get(url, params=params, timeout=_timeout())
            resp.raise_for_status()
            data = resp.json()
            for comment in data.get("data", []):
                comment["replies"] = comment.get("replies", {}).get("data", [])
                comments.append(comment)
            # the 'next' URL already embeds every query parameter
            url = data.get("paging", {}).get("next")
            params = None
        return {"media_id": media_id, "items": comments[:limit]}
    except Exception as exc:
        return _failure(exc, media_id=media_id, items=[])


def instagram_get_comment(comment_id: str, access_token: str) -> Dict[str, Any]:
    """Fetch a single comment (used to resolve the parent of a reply)."""
    try:
        resp = requests.get(
            f"{GRAPH_BASE}/{comment_id}",
            params={"fields": "id,text,username,timestamp", "access_token": access_token},
            timeout=_timeout(),
        )
        resp.raise_for_status()
        data = resp.json()
        return {
            "id": data.get("id", comment_id),
            "text": data.get("text", ""),
            "username": data.get("username", ""),
        }
    except Exception as exc:
        return _failure(exc, id=comment_id)


def instagram_get_user(user_scoped_id: str, access_token: str) -> Dict[str, Any]:
    """Fetch display name, username and avatar of a DM sender."""
    try:
        resp = requests.get(
            f"{GRAPH_BASE}/{user_scoped_id}",
            params={"fields": "name,username,profile_pic", "access_token": access_token},
            timeout=_timeout(),
        )
        resp.raise_for_status()
        data = resp.json()
        return {
            "id": user_scoped_id,
            "name": data.get("name"),
            "username": data.get("username"),
            "avatar": data.get("profile_pic"),
        }
    except Exception as exc:
        return _failure(exc, id=user_scoped_id)
