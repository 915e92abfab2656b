"""
Target Selection

Decides which repositories a task run touches and how many commits each
one receives.
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from gitfarm.db.models import Distribution


@dataclass(frozen=True)
class RepoTarget:
    full_name: str
    commits: int


def parse_repositories(repositories: Sequence[Dict[str, Any]]) -> List[RepoTarget]:
    return [
        RepoTarget(full_name=repo["full_name"], commits=int(repo.get("commits") or 0))
        for repo in repositories or []
    ]


def select_targets(
    repositories: Sequence[Dict[str, Any]],
    distribution: str,
    rng: Optional[random.Random] = None,
) -> List[RepoTarget]:
    """
    ``RANDOM``: one repository picked uniformly, one commit.
    ``EQUAL``: every repository with a positive count, in list order.
    """
    configured = parse_repositories(repositories)
    if not configured:
        return []

    if distribution == Distribution.RANDOM.value:
        picked = (rng or random).choice(configured)
        return [RepoTarget(full_name=picked.full_name, commits=1)]

    return [repo for repo in configured if repo.commits > 0]
