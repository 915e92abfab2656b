"""
Commit Job Schemas

Pydantic schemas for ad-hoc commit jobs.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gitfarm.core.commits.batch import validate_repository
from gitfarm.db.models import JobStatus


class PatternCell(BaseModel):
    """One contribution-grid cell."""
    week: int = Field(..., ge=0, le=51)
    day: int = Field(..., ge=0, le=6)
    selected: bool


class CommitJobCreate(BaseModel):
    pattern: List[PatternCell]
    repository: str = Field(..., max_length=255, description="Repository as owner/name")

    @field_validator("repository")
    @classmethod
    def check_repository(cls, value: str) -> str:
        return validate_repository(value)

    @property
    def selected_count(self) -> int:
        return sum(1 for cell in self.pattern if cell.selected)


class CommitJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: JobStatus
    total_commits: int
    completed_commits: int
    error_message: Optional[str]
    repository: str
    created_at: datetime
    completed_at: Optional[datetime]


class CommitJobCreated(BaseModel):
    success: bool = True
    job_id: UUID
    total_commits: int


class CommitJobListResponse(BaseModel):
    jobs: List[CommitJobResponse]
