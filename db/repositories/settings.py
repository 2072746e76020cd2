"""Settings repository — global key/value defaults and per-user overrides."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import GlobalSetting, UserSettings
from db.repositories.dialect import insert_for
from schemas.settings import SettingsValues

logger = logging.getLogger(__name__)

_FIELDS = ("operation_mode", "confidence_threshold", "system_prompt", "ai_tone")


async def get_global(session: AsyncSession) -> SettingsValues:
    """Return the global tier; unset keys come back as None."""
    result = await session.execute(
        select(GlobalSetting).where(GlobalSetting.key.in_(_FIELDS))
    )
    raw = {row.key: row.value for row in result.scalars().all()}
    if "confidence_threshold" in raw:
        raw["confidence_threshold"] = int(raw["confidence_threshold"])
    return SettingsValues(**raw)


async def set_global(session: AsyncSession, values: SettingsValues) -> SettingsValues:
    """Write every non-None field of ``values`` into the global tier."""
    for key, value in values.model_dump(mode="json", exclude_none=True).items():
        stmt = (
            insert_for(session, GlobalSetting)
            .values(key=key, value=str(value))
            .on_conflict_do_update(index_elements=["key"], set_={"value": str(value)})
        )
        await session.execute(stmt)
    await session.flush()
    return await get_global(session)


async def get_user_settings(session: AsyncSession, user_id: str) -> Optional[SettingsValues]:
    """Return the per-user tier, or None when the user never saved settings."""
    result = await session.execute(
        select(UserSettings).where(UserSettings.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return SettingsValues(**{field: getattr(row, field) for field in _FIELDS})


async def update_user_settings(
    session: AsyncSession, user_id: str, values: SettingsValues
) -> SettingsValues:
    """Upsert the non-None fields of ``values`` as the user's overrides."""
    data = values.model_dump(mode="json", exclude_none=True)
    stmt = insert_for(session, UserSettings).values(user_id=user_id, **data)
    if data:
        stmt = stmt.on_conflict_do_update(index_elements=["user_id"], set_=data)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
    await session.execute(stmt)
    await session.flush()
    return await get_user_settings(session, user_id)


async def clear_user_setting(session: AsyncSession, user_id: str, field: str) -> None:
    """Drop one override so the field falls back to the global value."""
    if field not in _FIELDS:
        raise ValueError(f"Unknown setting: {field}")
    result = await session.execute(
        select(UserSettings).where(UserSettings.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is not None:
        setattr(row, field, None)
        await session.flush()
