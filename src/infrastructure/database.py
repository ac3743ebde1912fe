"""
Async SQLAlchemy engine and session factory.

Production uses ``asyncpg``; the test-suite builds an ``aiosqlite`` engine
through the same ``make_engine`` factory, since the schema is plain SQL
types (JSON, no PostGIS).
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def make_engine(url: str) -> AsyncEngine:
    # SQLite uses a static pool; sizing args would be rejected.
    pool_args = {} if url.startswith("sqlite") else {"pool_size": 5, "max_overflow": 5}
    return create_async_engine(url, echo=False, **pool_args)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_schema(bind: AsyncEngine) -> None:
    """Create all tables (tests / local dev; production runs migrations)."""
    from src.infrastructure import models  # noqa: F401  registers tables on Base.metadata

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


engine = make_engine(settings.database_url)
async_session_factory = make_session_factory(engine)
