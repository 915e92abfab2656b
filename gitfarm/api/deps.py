"""
API Dependencies Module

Common dependencies used across API routes.
"""

import secrets
import uuid
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import redis.asyncio as redis

from gitfarm.config import settings
from gitfarm.core.github.tokens import GitHubFactory, default_github_factory
from gitfarm.core.scheduler.distributed_lock import DistributedLockManager
from gitfarm.db.models import User
from gitfarm.db.session import async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_maker() -> async_sessionmaker:
    """Session factory for work that manages its own transactions."""
    return async_session_maker


async def get_redis() -> AsyncGenerator[redis.Redis, None]:
    """Get Redis connection dependency."""
    client = redis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        yield client
    finally:
        await client.close()


async def get_lock_manager(
    redis_client: Annotated[redis.Redis, Depends(get_redis)],
) -> Optional[DistributedLockManager]:
    if not settings.runner_lock_enabled:
        return None
    return DistributedLockManager(redis_client)


def get_github_factory() -> GitHubFactory:
    return default_github_factory


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> User:
    """
    Resolve the user forwarded by the upstream identity layer in the
    ``X-User-Id`` header.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def verify_cron_secret(
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Reject trigger calls whose bearer token does not match ``cron_secret``."""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionMaker = Annotated[async_sessionmaker, Depends(get_session_maker)]
RedisClient = Annotated[redis.Redis, Depends(get_redis)]
LockManagerDep = Annotated[Optional[DistributedLockManager], Depends(get_lock_manager)]
GitHubFactoryDep = Annotated[GitHubFactory, Depends(get_github_factory)]
CurrentUser = Annotated[User, Depends(get_current_user)]
