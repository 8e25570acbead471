"""SQLAlchemy async session setup for the ownership mapping table.

Provides:
- Base: DeclarativeBase for all ORM models
- create_engine_from_settings: async engine configured from settings
- create_session_factory: session maker bound to an engine
- unit_of_work: commit on success, rollback on any exception
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config.settings import Environment, Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=(settings.ENVIRONMENT == Environment.DEV and settings.LOG_LEVEL == "DEBUG"),
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session with Unit-of-Work semantics.

    Repositories only call add()/flush()/delete().
    Commit happens once at the end of a successful block.
    Rollback happens on any exception.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
