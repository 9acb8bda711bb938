"""Database connection and session management."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.config.settings import settings


def to_async_url(database_url: str) -> str:
    """Map a sync database URL to its async driver form."""
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine (in-memory SQLite uses StaticPool to share one database)."""
    async_url = to_async_url(database_url)
    if async_url.startswith("sqlite") and ":memory:" in async_url:
        return create_async_engine(
            async_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if async_url.startswith("sqlite"):
        return create_async_engine(async_url, echo=echo, connect_args={"check_same_thread": False})
    return create_async_engine(async_url, echo=echo, pool_pre_ping=True)


async_engine = create_engine_for_url(settings.database_url, settings.database_echo)

# expire_on_commit=False: services hand committed invoices back to callers
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with AsyncSessionLocal() as session:
        yield session


__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "get_async_session",
    "create_engine_for_url",
    "to_async_url",
]
