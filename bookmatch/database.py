"""Database configuration and session management."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from bookmatch.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def _engine_options(url: str) -> dict[str, Any]:
    # SQLite (local runs and tests) has no connection pool sizing.
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_pre_ping": True,
        "pool_size": 10,  # Max persistent connections
        "max_overflow": 20,  # Additional transient connections under load
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Database initialization is handled by Alembic migrations
    (see migrations/). This keeps schema and code in step across
    environments.
    """
    from bookmatch.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Database initialized (schema managed by migrations)")
