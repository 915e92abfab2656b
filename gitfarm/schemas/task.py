"""
Task Schemas

Pydantic schemas for scheduled task requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from gitfarm.core.commits.batch import validate_repository
from gitfarm.core.runner.schedule import describe_schedule, validate_schedule
from gitfarm.db.models import Distribution, LogStatus


class RepositoryConfig(BaseModel):
    """One target repository of a task."""
    full_name: str = Field(..., max_length=255, description="Repository as owner/name")
    commits: int = Field(default=1, ge=0, le=100, description="Commits per run (EQUAL mode)")

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, value: str) -> str:
        return validate_repository(value)


class TaskBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    repositories: List[RepositoryConfig] = Field(..., min_length=1)
    distribution: Distribution = Distribution.EQUAL
    schedule: str = Field(
        ...,
        description="5-field crontab expression, evaluated in UTC",
        examples=["30 9 * * *"],
    )
    credit_limit: Optional[int] = Field(None, ge=1, description="Deactivate after this many credits")

    @field_validator("schedule")
    @classmethod
    def check_schedule(cls, value: str) -> str:
        return validate_schedule(value)


class TaskCreate(TaskBase):
    """Schema for creating a task."""


class TaskUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    repositories: Optional[List[RepositoryConfig]] = Field(None, min_length=1)
    distribution: Optional[Distribution] = None
    schedule: Optional[str] = None
    credit_limit: Optional[int] = Field(None, ge=1)

    @field_validator("schedule")
    @classmethod
    def check_schedule(cls, value: Optional[str]) -> Optional[str]:
        return validate_schedule(value) if value is not None else value


class TaskLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: LogStatus
    message: str
    commits_count: int
    credits_deducted: int
    repository: Optional[str]
    details: List[dict]
    timestamp: datetime


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    repositories: List[RepositoryConfig]
    distribution: Distribution
    schedule: str
    credit_limit: Optional[int]
    credits_used: int
    active: bool
    next_run_at: Optional[datetime]
    last_run_at: Optional[datetime]
    created_at: datetime

    @computed_field
    @property
    def schedule_description(self) -> str:
        return describe_schedule(self.schedule)


class TaskDetailResponse(TaskResponse):
    logs: List[TaskLogResponse] = Field(default_factory=list)


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int
