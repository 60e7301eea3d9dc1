"""
Async engine and session factory.

PostgreSQL (asyncpg) gets a sized connection pool; SQLite is only used for
local runs and tests and takes the driver defaults.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from academy_booking.core.config import get_settings

settings = get_settings()


def build_engine(url: str, **kwargs) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.DEBUG, **kwargs)
    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        **kwargs,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def sibling_session_factory(db: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the same engine as `db`.

    Used for concurrent read-only projections and for background jobs that
    outlive the request session.
    """
    return async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
