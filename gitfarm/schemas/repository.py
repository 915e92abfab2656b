"""
Repository Schemas
"""

from typing import List

from pydantic import BaseModel


class RepositorySummary(BaseModel):
    id: int
    name: str
    full_name: str
    private: bool
    url: str
    default_branch: str


class RepositoryListResponse(BaseModel):
    repositories: List[RepositorySummary]


class RepoStateResponse(BaseModel):
    repository: str
    branch: str
    sha: str
    commit_count: int
