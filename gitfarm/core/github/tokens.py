"""
Token Lookup

Resolves the GitHub access token stored for a user by the account-linking
flow.
"""

import uuid
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gitfarm.core.github.client import GitHubClient
from gitfarm.core.github.errors import GitHubAuthError
from gitfarm.db.models import Account, GITHUB_PROVIDER

GitHubFactory = Callable[[str], GitHubClient]


def default_github_factory(token: str) -> GitHubClient:
    return GitHubClient(token)


async def get_github_token(session: AsyncSession, user_id: uuid.UUID) -> str:
    """Return the user's GitHub access token or raise ``GitHubAuthError``."""
    result = await session.execute(
        select(Account.access_token)
        .where(Account.user_id == user_id, Account.provider == GITHUB_PROVIDER)
        .limit(1)
    )
    token = result.scalar_one_or_none()
    if not token:
        raise GitHubAuthError("GitHub not connected")
    return token
