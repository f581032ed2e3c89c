"""Database engine and session management."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from repaso.config import settings
from repaso.models import Base


def make_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine, defaulting to the configured database URL."""
    return create_async_engine(database_url or settings.database_url, echo=settings.debug)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine) -> None:
    """Create all tables that don't exist yet."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
