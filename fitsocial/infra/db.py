"""
Database infrastructure configuration

SQLAlchemy async engine and session management.
"""

from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from fitsocial.core.config import settings


def build_engine(url: str = settings.database_url) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": settings.db_echo}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            poolclass=AsyncAdaptedQueuePool,
            pool_pre_ping=True,  # Automatically detect and disconnect invalid connections
        )
    return create_async_engine(url, **kwargs)


engine = build_engine()

# Variable to override session in tests
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database session.
    Yields a session and closes it after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables() -> None:
    """Create all tables (development only; managed databases use Alembic)"""
    from fitsocial.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connection():
    """Close database connection pool"""
    await engine.dispose()
