"""Reply delivery through the Instagram tools.

The tools use blocking ``requests`` calls; they run in a worker thread with an
outer timeout so a stuck connection cannot hang the caller.
"""
import asyncio
import logging
import os

from db.models import InboundMessage, User
from schemas.messages import MessageType
from schemas.results import DeliveryResult, ErrorCode
from tools import instagram_tools

logger = logging.getLogger(__name__)


def _timeout() -> float:
    # a little above the per-request timeout the tools apply themselves
    return float(os.environ.get("INSTAGRAM_TIMEOUT_SECONDS", "15")) + 5


async def deliver(user: User, message: InboundMessage, text: str) -> DeliveryResult:
    """Send ``text`` as the reply to ``message`` on the channel it arrived on."""
    if not user.is_connected:
        return DeliveryResult(
            success=False,
            error_code=ErrorCode.NOT_CONNECTED,
            error="Instagram account is not connected.",
        )

    if message.type == MessageType.DM.value:
        if not message.sender_id:
            return DeliveryResult(
                success=False,
                error_code=ErrorCode.SEND_FAILED,
                error="Direct message has no recipient id.",
            )
        call = (
            instagram_tools.instagram_send_message,
            user.instagram_account_id,
            message.sender_id,
            text,
            user.instagram_access_token,
        )
        id_key = "message_id"
    else:
        call = (
            instagram_tools.instagram_reply_to_comment,
            message.external_id,
            text,
            user.instagram_access_token,
        )
        id_key = "comment_id"

    try:
        result = await asyncio.wait_for(asyncio.to_thread(*call), timeout=_timeout())
    except asyncio.TimeoutError:
        logger.warning("Delivery of message %s timed out", message.id)
        return DeliveryResult(
            success=False,
            error_code=ErrorCode.TIMEOUT,
            error="Instagram did not answer in time.",
        )

    if result.get("error"):
        code = ErrorCode.TIMEOUT if result.get("error_code") == "TIMEOUT" else ErrorCode.SEND_FAILED
        logger.warning("Delivery of message %s failed: %s", message.id, result["error"])
        return DeliveryResult(success=False, error_code=code, error=result["error"])

    logger.info("Delivered reply for message %s (%s)", message.id, message.type)
    return DeliveryResult(success=True, external_id=result.get(id_key))
