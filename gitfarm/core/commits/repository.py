"""
Repository State

Default-branch resolution, ref updates and empty-repository
initialization.
"""

import logging
from dataclasses import dataclass

from gitfarm.core.github.client import GitHubClient
from gitfarm.core.github.errors import (
    BranchNotFoundError,
    GitHubAPIError,
    PushRejectedError,
    RepositoryEmptyError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

README_PATH = "README.md"


@dataclass
class RepoState:
    """Current head of a repository's default branch."""
    branch: str
    sha: str
    commit_count: int = 0


async def get_repo_state(
    client: GitHubClient,
    repository: str,
    with_commit_count: bool = False,
) -> RepoState:
    """
    Resolve the default branch of ``repository`` and the SHA it points to.

    Raises:
        RepositoryNotFoundError: metadata lookup failed
        RepositoryEmptyError: the repository has no commits yet (409)
        BranchNotFoundError: the default branch ref is missing (404)
        GitHubAPIError: any other ref lookup failure
    """
    repo_resp = await client.get_repository(repository)
    if not repo_resp.is_success:
        raise RepositoryNotFoundError("Repository not found", status_code=repo_resp.status_code)
    branch = repo_resp.json()["default_branch"]

    ref_resp = await client.get_ref(repository, branch)
    if not ref_resp.is_success:
        message = client.error_message(ref_resp)
        logger.error(f"Failed to fetch HEAD of {repository} ({ref_resp.status_code}): {message}")
        if ref_resp.status_code == 409:
            raise RepositoryEmptyError(
                "Repository is empty. Please initialize it with a commit first.",
                status_code=409,
            )
        if ref_resp.status_code == 404:
            raise BranchNotFoundError(
                f"Branch '{branch}' not found. Is the repository empty?",
                status_code=404,
            )
        raise GitHubAPIError(
            f"Failed to fetch HEAD: {ref_resp.status_code} {message}",
            status_code=ref_resp.status_code,
        )

    state = RepoState(branch=branch, sha=ref_resp.json()["object"]["sha"])
    if with_commit_count:
        state.commit_count = await client.count_commits(repository, branch)
    return state


async def push_changes(
    client: GitHubClient,
    repository: str,
    branch: str,
    sha: str,
    force: bool = False,
) -> None:
    """Move ``branch`` to ``sha``. Non-forced updates must fast-forward."""
    resp = await client.update_ref(repository, branch, sha, force=force)
    if resp.is_success:
        logger.info(f"Updated {repository}@{branch} to {sha} (force={force})")
        return

    message = client.error_message(resp)
    if resp.status_code == 422:
        raise PushRejectedError(f"Failed to push: {message}", status_code=422)
    raise GitHubAPIError(f"Failed to push: {resp.status_code} {message}", status_code=resp.status_code)


async def initialize_repository(client: GitHubClient, repository: str) -> None:
    """Seed an empty repository with a README so commit chains have a parent."""
    name = repository.split("/", 1)[1]
    await client.put_file(
        repository,
        README_PATH,
        f"# {name}\n\nInitialized by GitFarm",
        message="Initial commit",
    )
    logger.info(f"Initialized repository {repository}")
