from .instagram_tools import (
    instagram_send_message,
    instagram_reply_to_comment,
    instagram_get_profile,
    instagram_list_media,
    instagram_list_comments,
    instagram_get_comment,
    instagram_get_user,
)

__all__ = [
    "instagram_send_message", "instagram_reply_to_comment",
    "instagram_get_profile", "instagram_list_media", "instagram_list_comments",
    "instagram_get_comment", "instagram_get_user",
]
