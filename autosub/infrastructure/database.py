"""
Async SQLAlchemy engine and session factory for the primary store.

Uses ``asyncpg`` as the PostgreSQL driver.  Catalog reads run on the
request session (``get_db``); subscription writes open their own session
through ``async_session_factory`` so a failed write never poisons the
request transaction.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from autosub.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=10,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for users, vehicles, cities and subscriptions."""


async def dispose_engine() -> None:
    """Close pooled connections (app shutdown, end of the seed script)."""
    await engine.dispose()
