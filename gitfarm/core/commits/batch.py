"""
Commit Batch Builder

Extends a branch's history with a straight line of metadata-only commits:
every commit reuses its parent's tree, so only dates and messages differ.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from gitfarm.core.github.client import GitHubClient
from gitfarm.core.github.errors import GitHubError

logger = logging.getLogger(__name__)

REPOSITORY_RE = re.compile(r"^[\w.-]+/[\w.-]+$")


@dataclass(frozen=True)
class CommitDescriptor:
    """Date and message of one synthetic commit."""
    date: datetime
    message: str


@dataclass(frozen=True)
class CommitAuthor:
    name: str
    email: str

    def signature(self, date: datetime) -> Dict[str, str]:
        return {"name": self.name, "email": self.email, "date": _isoformat(date)}


@dataclass
class CommitBatchResult:
    last_sha: str
    count: int


class CommitBatchError(GitHubError):
    """
    A commit chain could not be completed.

    ``index`` is the position of the descriptor that failed and ``stage``
    is either ``"parent"`` or ``"create"``. Commits created before the
    failure stay in the object store, unreferenced.
    """

    def __init__(self, message: str, stage: str, index: int):
        super().__init__(message)
        self.stage = stage
        self.index = index


def validate_repository(repository: str) -> str:
    if not REPOSITORY_RE.match(repository or "") or any(
        part in (".", "..") for part in repository.split("/")
    ):
        raise ValueError(f"Invalid repository name: {repository!r}")
    return repository


def _isoformat(date: datetime) -> str:
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


async def build_commit_chain(
    client: GitHubClient,
    repository: str,
    parent_sha: str,
    commits: Sequence[CommitDescriptor],
    author: CommitAuthor,
) -> CommitBatchResult:
    """
    Create one commit per descriptor, each parented on the previous one.

    Args:
        client: Authenticated GitHub client
        repository: ``owner/name``
        parent_sha: Commit the chain starts from
        commits: Ordered, non-empty descriptors
        author: Identity used for both author and committer

    Returns:
        The chain tip and the number of commits created

    Raises:
        ValueError: invalid repository name or empty batch
        CommitBatchError: a parent lookup or commit creation failed; no
            further descriptors are processed
    """
    validate_repository(repository)
    if not commits:
        raise ValueError("Commit batch must not be empty")

    current_sha = parent_sha
    for index, descriptor in enumerate(commits):
        try:
            parent = await client.get_commit(repository, current_sha)
            tree_sha = parent["tree"]["sha"]
        except (GitHubError, KeyError) as e:
            raise CommitBatchError(
                f"Failed to fetch parent: {e}", stage="parent", index=index
            ) from e

        signature = author.signature(descriptor.date)
        try:
            created = await client.create_commit(
                repository,
                message=descriptor.message,
                tree=tree_sha,
                parents=[current_sha],
                author=signature,
                committer=signature,
            )
        except GitHubError as e:
            raise CommitBatchError(
                f"Failed to create commit: {e}", stage="create", index=index
            ) from e

        current_sha = created["sha"]

    logger.info(f"Built {len(commits)} commits on {repository}, tip {current_sha}")
    return CommitBatchResult(last_sha=current_sha, count=len(commits))


def backdated_descriptors(
    count: int,
    message: str,
    now: Optional[datetime] = None,
) -> List[CommitDescriptor]:
    """``count`` descriptors one second apart, the last one dated ``now``."""
    now = now or datetime.now(timezone.utc)
    return [
        CommitDescriptor(date=now - timedelta(seconds=count - 1 - i), message=message)
        for i in range(count)
    ]


def pattern_descriptors(
    pattern: Iterable[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[CommitDescriptor]:
    """
    Turn contribution-grid cells into descriptors.

    Each selected ``{"week": w, "day": d}`` cell maps to one year ago plus
    ``w`` weeks and ``d`` days. The commit message is the ISO date.
    """
    now = now or datetime.now(timezone.utc)
    origin = now - relativedelta(years=1)
    descriptors = []
    for cell in pattern:
        if not cell.get("selected"):
            continue
        date = origin + timedelta(weeks=cell["week"], days=cell["day"])
        descriptors.append(CommitDescriptor(date=date, message=date.isoformat()))
    return descriptors
