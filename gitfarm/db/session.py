"""
Database Engine and Sessions

One async engine per process. Request handlers get a session from
``gitfarm.api.deps.get_db``; the runner and the Celery tasks open their own
from ``async_session_maker`` and commit explicitly.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gitfarm.config import settings

async_engine = create_async_engine(
    str(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    echo=settings.debug,
)

# Runner code keeps using loaded rows after committing each task.
async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Register models; in development also create missing tables."""
    from gitfarm.db import models  # noqa: F401
    from gitfarm.db.base import Base

    if settings.is_development:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await async_engine.dispose()
