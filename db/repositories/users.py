"""User repository — account lookup, Instagram connection, row locking."""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    """Return the User with this id, or None."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_by_instagram_account(
    session: AsyncSession, instagram_account_id: str
) -> Optional[User]:
    """Return the user whose linked Instagram account id matches, or None."""
    result = await session.execute(
        select(User).where(User.instagram_account_id == instagram_account_id)
    )
    return result.scalar_one_or_none()


async def lock_user(session: AsyncSession, user_id: str) -> Optional[User]:
    """SELECT ... FOR UPDATE on the user row.

    Serializes per-user writes (knowledge store cap enforcement) until the
    surrounding transaction ends. SQLite ignores FOR UPDATE, so there a no-op
    UPDATE of the row takes the database write lock instead.
    """
    if session.get_bind().dialect.name == "sqlite":
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(email=User.email)
            .execution_options(synchronize_session=False)
        )
    result = await session.execute(
        select(User).where(User.id == user_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    user_id: str,
    *,
    email: Optional[str] = None,
    instagram_account_id: Optional[str] = None,
    instagram_username: Optional[str] = None,
    instagram_access_token: Optional[str] = None,
) -> User:
    user = User(
        id=user_id,
        email=email,
        instagram_account_id=instagram_account_id,
        instagram_username=instagram_username,
        instagram_access_token=instagram_access_token,
    )
    session.add(user)
    await session.flush()
    return user


async def connect_instagram(
    session: AsyncSession,
    user_id: str,
    instagram_account_id: str,
    access_token: str,
    username: Optional[str] = None,
) -> Optional[User]:
    """Link an Instagram business account to an existing user."""
    user = await get_user(session, user_id)
    if user is None:
        return None
    user.instagram_account_id = instagram_account_id
    user.instagram_access_token = access_token
    if username:
        user.instagram_username = username
    await session.flush()
    logger.info("Connected Instagram account %s to user %s", instagram_account_id, user_id)
    return user


async def disconnect_instagram(session: AsyncSession, user_id: str) -> bool:
    user = await get_user(session, user_id)
    if user is None:
        return False
    user.instagram_account_id = None
    user.instagram_access_token = None
    user.instagram_username = None
    await session.flush()
    return True
