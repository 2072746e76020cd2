"""Shared fixtures: an in-memory SQLite database per test and a connected user.

``db_maker`` gives a file-backed database for tests that race separate sessions.
"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.models import Base
from db.repositories import users as users_repo
from tests.factories import ACCOUNT_ID, USER_ID, USERNAME


@pytest.fixture(autouse=True)
def _no_llm_credentials(monkeypatch):
    """Tests never reach a real model provider."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as db:
        yield db
    await engine.dispose()


@pytest_asyncio.fixture
async def user(session):
    return await users_repo.create_user(
        session,
        USER_ID,
        email="ana@example.com",
        instagram_account_id=ACCOUNT_ID,
        instagram_username=USERNAME,
        instagram_access_token="token-ana",
    )


@pytest_asyncio.fixture
async def other_user(session):
    return await users_repo.create_user(session, "u_bruno", email="bruno@example.com")



@pytest_asyncio.fixture
async def db_maker(tmp_path):
    """Session factory over a file-backed database; each session has its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'copilot.db'}", connect_args={"timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as db:
        await users_repo.create_user(
            db,
            USER_ID,
            email="ana@example.com",
            instagram_account_id=ACCOUNT_ID,
            instagram_username=USERNAME,
            instagram_access_token="token-ana",
        )
        await db.commit()
    yield maker
    await engine.dispose()
