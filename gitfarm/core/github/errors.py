"""
GitHub Errors

Exception taxonomy for GitHub REST failures. The task runner turns these
into per-repository log entries; the API layer maps them to HTTP errors.
"""

from typing import Optional


class GitHubError(Exception):
    """Base class for all GitHub related failures."""


class GitHubAuthError(GitHubError):
    """Missing, revoked or insufficient access token."""


class GitHubAPIError(GitHubError):
    """A GitHub REST call failed or could not be completed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RepositoryNotFoundError(GitHubAPIError):
    """Repository does not exist or is not visible with this token."""


class RepositoryEmptyError(GitHubAPIError):
    """Repository has no commits yet and needs initialization."""


class BranchNotFoundError(GitHubAPIError):
    """The default branch reference could not be read."""


class PushRejectedError(GitHubAPIError):
    """Ref update refused, usually because it is not a fast-forward."""
