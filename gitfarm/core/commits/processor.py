"""
Commit Job Processor

Executes ad-hoc commit jobs created from the dashboard editor: one commit
per selected grid cell, published with a forced ref update.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gitfarm.config import settings
from gitfarm.core.commits.batch import CommitAuthor, build_commit_chain, pattern_descriptors
from gitfarm.core.commits.repository import get_repo_state, push_changes
from gitfarm.core.github.tokens import GitHubFactory, default_github_factory, get_github_token
from gitfarm.core.ledger import CreditLedger, InsufficientCreditsError
from gitfarm.db.models import CommitJob, JobStatus, User
from gitfarm.monitoring.metrics import commit_jobs_counter, commits_created_counter

logger = logging.getLogger(__name__)


async def process_commit_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    github_factory: GitHubFactory = default_github_factory,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Run a pending commit job to completion.

    The job moves PENDING -> RUNNING -> COMPLETED, or to FAILED with
    ``error_message`` set, in which case the error is re-raised. Credits are
    only debited once the whole chain exists.

    Raises:
        LookupError: job does not exist
        ValueError: job is not pending
    """
    job = await session.get(CommitJob, job_id)
    if job is None:
        raise LookupError("Job not found")
    if job.status != JobStatus.PENDING.value:
        raise ValueError("Job is not pending")

    user = await session.get(User, job.user_id)
    ledger = CreditLedger(session)

    try:
        descriptors = pattern_descriptors(job.pattern, now=now or datetime.now(timezone.utc))
        if not descriptors:
            raise ValueError("No days selected")

        available = await ledger.balance(job.user_id)
        if available < len(descriptors):
            raise InsufficientCreditsError(len(descriptors), available)

        job.status = JobStatus.RUNNING.value
        await session.commit()

        token = await get_github_token(session, job.user_id)
        author = CommitAuthor(
            name=user.name or settings.commit_author_fallback,
            email=user.email,
        )
        async with github_factory(token) as client:
            state = await get_repo_state(client, job.repository)
            result = await build_commit_chain(
                client, job.repository, state.sha, descriptors, author
            )
            await ledger.debit(job.user_id, result.count)
            try:
                await push_changes(client, job.repository, state.branch, result.last_sha, force=True)
            except Exception:
                await ledger.grant(job.user_id, result.count)
                raise

        job.completed_commits = result.count
        job.status = JobStatus.COMPLETED.value
        job.completed_at = datetime.now(timezone.utc)
        await session.commit()
    except Exception as e:
        logger.error(f"Error processing commit job {job_id}: {e}")
        job.status = JobStatus.FAILED.value
        job.error_message = str(e) or e.__class__.__name__
        await session.commit()
        commit_jobs_counter.labels(status=JobStatus.FAILED.value).inc()
        raise

    commit_jobs_counter.labels(status=JobStatus.COMPLETED.value).inc()
    commits_created_counter.labels(source="job").inc(result.count)
    logger.info(f"Commit job {job_id} completed with {result.count} commits")
    return {"success": True, "completed_commits": result.count, "sha": result.last_sha}
