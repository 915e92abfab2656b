"""
Celery Task Definitions

Background entry points: the periodic task runner and ad-hoc commit jobs.
Both bridge into the async core with ``asyncio.run``.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict

from celery import Task

from gitfarm.config import settings
from gitfarm.core.celery.app import celery_app
from gitfarm.core.commits.processor import process_commit_job as run_commit_job
from gitfarm.core.runner.service import trigger_runner
from gitfarm.core.scheduler.distributed_lock import DistributedLockManager

logger = logging.getLogger(__name__)


class BaseTask(Task):
    """Base task with start/success/failure logging."""

    def before_start(self, task_id: str, args: tuple, kwargs: dict) -> None:
        logger.info(
            f"Task starting: {self.name}",
            extra={"task_id": task_id, "task_name": self.name},
        )

    def on_success(self, retval: Any, task_id: str, args: tuple, kwargs: dict) -> None:
        logger.info(
            f"Task completed successfully: {self.name}",
            extra={"task_id": task_id, "result": str(retval)[:200]},
        )

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            f"Task failed: {self.name}",
            extra={"task_id": task_id, "error": str(exc)},
            exc_info=True,
        )


async def _run_due_tasks() -> Dict[str, Any]:
    # Engines are bound to an event loop, so each asyncio.run gets its own.
    from gitfarm.db.session import async_engine, async_session_maker

    lock_manager = None
    if settings.runner_lock_enabled:
        lock_manager = DistributedLockManager()
        await lock_manager.connect()
    try:
        return await trigger_runner(async_session_maker, lock_manager=lock_manager)
    finally:
        if lock_manager is not None:
            await lock_manager.close()
        await async_engine.dispose()


async def _process_commit_job(job_id: str) -> Dict[str, Any]:
    from gitfarm.db.session import async_engine, async_session_maker

    try:
        async with async_session_maker() as session:
            return await run_commit_job(session, uuid.UUID(job_id))
    finally:
        await async_engine.dispose()


@celery_app.task(base=BaseTask, bind=True, ignore_result=True)
def run_due_tasks(self) -> Dict[str, Any]:
    """Periodic runner pass, scheduled by beat every ``runner_interval_seconds``."""
    return asyncio.run(_run_due_tasks())


@celery_app.task(base=BaseTask, bind=True)
def process_commit_job(self, job_id: str) -> Dict[str, Any]:
    """Process one ad-hoc commit job. Not retried: commit creation is not idempotent."""
    return asyncio.run(_process_commit_job(job_id))
