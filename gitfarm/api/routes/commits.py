"""
Commit Job Routes

Submit ad-hoc commit patterns from the dashboard editor and follow their
progress.
"""

import logging
from typing import Annotated, Callable
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select

from gitfarm.api.deps import CurrentUser, DbSession
from gitfarm.core.ledger import CreditLedger, InsufficientCreditsError
from gitfarm.db.models import CommitJob, JobStatus
from gitfarm.schemas.commit_job import (
    CommitJobCreate,
    CommitJobCreated,
    CommitJobListResponse,
    CommitJobResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RECENT_JOBS = 20

JobDispatcher = Callable[[str], None]


def get_job_dispatcher() -> JobDispatcher:
    """Queue a job on the ``commits`` Celery queue."""
    from gitfarm.core.celery.tasks import process_commit_job

    return lambda job_id: process_commit_job.delay(job_id)


JobDispatcherDep = Annotated[JobDispatcher, Depends(get_job_dispatcher)]


@router.post("", response_model=CommitJobCreated)
async def create_commit_job(
    job_data: CommitJobCreate,
    db: DbSession,
    user: CurrentUser,
    dispatch: JobDispatcherDep,
) -> CommitJobCreated:
    """
    Create a commit job for the selected grid cells and queue it.

    The balance is checked here and again when the job is processed.
    """
    total_commits = job_data.selected_count
    if total_commits == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No days selected",
        )

    available = await CreditLedger(db).balance(user.id)
    if available < total_commits:
        raise InsufficientCreditsError(total_commits, available)

    job = CommitJob(
        user_id=user.id,
        status=JobStatus.PENDING.value,
        total_commits=total_commits,
        completed_commits=0,
        pattern=[cell.model_dump() for cell in job_data.pattern],
        repository=job_data.repository,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)

    dispatch(str(job.id))
    logger.info(f"Queued commit job {job.id} ({total_commits} commits) for {job.repository}")

    return CommitJobCreated(job_id=job.id, total_commits=total_commits)


@router.get("", response_model=CommitJobListResponse)
async def list_commit_jobs(db: DbSession, user: CurrentUser) -> CommitJobListResponse:
    result = await db.execute(
        select(CommitJob)
        .where(CommitJob.user_id == user.id)
        .order_by(CommitJob.created_at.desc())
        .limit(RECENT_JOBS)
    )
    return CommitJobListResponse(
        jobs=[CommitJobResponse.model_validate(job) for job in result.scalars().all()]
    )


@router.get("/{job_id}", response_model=CommitJobResponse)
async def get_commit_job(job_id: UUID, db: DbSession, user: CurrentUser) -> CommitJobResponse:
    job = await db.get(CommitJob, job_id)
    if job is None or job.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return CommitJobResponse.model_validate(job)
