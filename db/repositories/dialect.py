"""Dialect-aware INSERT for upserts and insert-or-ignore.

PostgreSQL and SQLite both support ``ON CONFLICT``; the statement class has
to come from the dialect the session is bound to.
"""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, model):
    """Return an INSERT construct for ``model`` with on_conflict_* support."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
