"""
GitHub Repository Routes

Repository listing, state inspection and empty-repository initialization
for the current user's linked GitHub account.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from gitfarm.api.deps import CurrentUser, DbSession, GitHubFactoryDep
from gitfarm.core.commits.batch import validate_repository
from gitfarm.core.commits.repository import get_repo_state, initialize_repository
from gitfarm.core.github.client import GitHubClient
from gitfarm.core.github.errors import (
    GitHubAPIError,
    GitHubAuthError,
    RepositoryEmptyError,
    RepositoryNotFoundError,
)
from gitfarm.core.github.tokens import get_github_token
from gitfarm.schemas.repository import (
    RepoStateResponse,
    RepositoryListResponse,
    RepositorySummary,
)

router = APIRouter()


async def get_user_github(
    db: DbSession,
    user: CurrentUser,
    github_factory: GitHubFactoryDep,
):
    """Client for the user's linked account; no account surfaces as 403."""
    token = await get_github_token(db, user.id)
    async with github_factory(token) as client:
        yield client


UserGitHub = Annotated[GitHubClient, Depends(get_user_github)]


def _full_name(owner: str, name: str) -> str:
    try:
        return validate_repository(f"{owner}/{name}")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, GitHubAuthError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, RepositoryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, RepositoryEmptyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/repositories", response_model=RepositoryListResponse)
async def list_repositories(client: UserGitHub) -> RepositoryListResponse:
    try:
        repos = await client.list_repositories()
    except (GitHubAuthError, GitHubAPIError) as e:
        raise _http_error(e)
    return RepositoryListResponse(
        repositories=[
            RepositorySummary(
                id=repo["id"],
                name=repo["name"],
                full_name=repo["full_name"],
                private=repo["private"],
                url=repo["html_url"],
                default_branch=repo.get("default_branch") or "main",
            )
            for repo in repos
        ]
    )


@router.get("/repositories/{owner}/{name}/state", response_model=RepoStateResponse)
async def repository_state(owner: str, name: str, client: UserGitHub) -> RepoStateResponse:
    """
    Default branch, head SHA and commit count.

    An empty repository answers 409 so the dashboard can offer initialization.
    """
    repository = _full_name(owner, name)
    try:
        state = await get_repo_state(client, repository, with_commit_count=True)
    except (GitHubAuthError, GitHubAPIError) as e:
        raise _http_error(e)
    return RepoStateResponse(
        repository=repository,
        branch=state.branch,
        sha=state.sha,
        commit_count=state.commit_count,
    )


@router.post("/repositories/{owner}/{name}/initialize", status_code=status.HTTP_201_CREATED)
async def initialize(owner: str, name: str, client: UserGitHub) -> dict:
    repository = _full_name(owner, name)
    try:
        await initialize_repository(client, repository)
    except (GitHubAuthError, GitHubAPIError) as e:
        raise _http_error(e)
    return {"success": True, "repository": repository}
