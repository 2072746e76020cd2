"""Effective settings: per-user override > global default > built-in default.

Resolution happens at read time on every call; nothing is cached.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import settings as settings_repo
from schemas.settings import EffectiveSettings, OperationMode, SettingsValues

DEFAULT_OPERATION_MODE = OperationMode.MANUAL
DEFAULT_CONFIDENCE_THRESHOLD = 80
DEFAULT_SYSTEM_PROMPT = (
    "You are the owner of this Instagram account answering your followers' "
    "direct messages and comments. Be friendly, concise and helpful, and write "
    "the way a real person would, never like a corporate bot."
)

_BUILTIN = SettingsValues(
    operation_mode=DEFAULT_OPERATION_MODE,
    confidence_threshold=DEFAULT_CONFIDENCE_THRESHOLD,
    system_prompt=DEFAULT_SYSTEM_PROMPT,
)


def _pick(field: str, *tiers: Optional[SettingsValues]):
    for tier in tiers:
        if tier is None:
            continue
        value = getattr(tier, field)
        # an empty system prompt counts as unset
        if value is not None and value != "":
            return value
    return None


def effective(
    global_values: Optional[SettingsValues], per_user: Optional[SettingsValues]
) -> EffectiveSettings:
    """Resolve each field as per_user ?? global ?? built-in default."""
    return EffectiveSettings(
        operation_mode=_pick("operation_mode", per_user, global_values, _BUILTIN),
        confidence_threshold=_pick("confidence_threshold", per_user, global_values, _BUILTIN),
        system_prompt=_pick("system_prompt", per_user, global_values, _BUILTIN),
        ai_tone=_pick("ai_tone", per_user, global_values),
    )


async def load_effective_settings(session: AsyncSession, user_id: str) -> EffectiveSettings:
    global_values = await settings_repo.get_global(session)
    per_user = await settings_repo.get_user_settings(session, user_id)
    return effective(global_values, per_user)
