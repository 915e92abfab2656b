from gitfarm.core.github.client import GitHubClient
from gitfarm.core.github.errors import (
    BranchNotFoundError,
    GitHubAPIError,
    GitHubAuthError,
    GitHubError,
    PushRejectedError,
    RepositoryEmptyError,
    RepositoryNotFoundError,
)

__all__ = [
    "GitHubClient",
    "GitHubError",
    "GitHubAuthError",
    "GitHubAPIError",
    "RepositoryNotFoundError",
    "RepositoryEmptyError",
    "BranchNotFoundError",
    "PushRejectedError",
]
