"""Async database engine, session factory and declarative base."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tripzeo.config import settings


class Base(DeclarativeBase):
    """Declarative base for all models."""


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    echo=settings.debug,
)

async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session.

    Services own their commits; anything left uncommitted is rolled back.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session context for background tasks and scripts."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


async def init_db() -> None:
    """Create tables (development only, migrations handle production)."""
    from tripzeo import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine pool."""
    await engine.dispose()
