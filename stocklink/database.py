# stocklink/database.py

# type: ignore[misc]
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def normalise_database_url(database_url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support"""
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Build an async engine for the given URL (falls back to DATABASE_URL)."""
    url = database_url or os.environ.get('DATABASE_URL', '')
    if not url:
        raise ValueError("DATABASE_URL is not set in environment variables")

    url = normalise_database_url(url)
    options = {"echo": False, "future": True}
    if url.startswith('postgresql+asyncpg://'):
        options.update(pool_size=5, max_overflow=10, pool_timeout=30, pool_recycle=1800)
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: a session from the factory created at startup."""
    async with session_scope(request.app.state.session_factory) as session:
        yield session


def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_factory
