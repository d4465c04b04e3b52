"""
Async database engine, session factory, and ORM base.

Two kinds of session exist:
  • request-scoped sessions via Depends(get_db_session), owned by the
    route or dependency that receives them;
  • detached sessions via detached_session(), used by work that outlives
    the request session (the API-key usage bump).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from promptiq.core.config import settings

# pool_pre_ping drops stale connections; SQL echo only in debug mode
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # ORM rows are read after commit in routes
)


class Base(DeclarativeBase):
    """Declarative base shared by users, agents and api_keys."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; the caller commits."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def detached_session() -> AsyncGenerator[AsyncSession, None]:
    """Session independent of any request lifecycle. Commits on success."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
