"""
In-process Runner Scheduler

Drives ``trigger_runner`` from an ``AsyncIOScheduler`` for single-process
deployments and local development (``SCHEDULER_ENABLED=true``). Multi-worker
deployments use Celery beat or an external cron calling
``/api/cron/run-tasks`` instead; all three share the Redis runner lock.

Run standalone with ``python -m gitfarm.core.scheduler.service``.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from gitfarm.config import settings
from gitfarm.core.scheduler.distributed_lock import DistributedLockManager

logger = logging.getLogger(__name__)

RUNNER_JOB_ID = "run-due-tasks"


class SchedulerService:
    """Single interval job calling the task runner every ``interval_seconds``."""

    def __init__(self, interval_seconds: Optional[int] = None):
        self.interval_seconds = interval_seconds or settings.runner_interval_seconds
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )
        self._lock_manager: Optional[DistributedLockManager] = None

    @property
    def started(self) -> bool:
        return self.scheduler.running

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Runner pass missed (scheduled {event.scheduled_run_time})")
        elif event.exception:
            logger.error(f"Runner pass failed: {event.exception}", exc_info=event.exception)
        else:
            logger.info(f"Runner pass finished: {event.retval}")

    async def run_now(self) -> Dict[str, Any]:
        """One runner pass against the application database."""
        from gitfarm.core.runner.service import trigger_runner
        from gitfarm.db.session import async_session_maker

        return await trigger_runner(async_session_maker, lock_manager=self._lock_manager)

    async def start(self) -> None:
        if self.started:
            logger.warning("Scheduler already started")
            return

        if settings.runner_lock_enabled:
            self._lock_manager = DistributedLockManager()
            await self._lock_manager.connect()

        # First pass right away, then every interval; overlapping passes are dropped.
        self.scheduler.add_job(
            self.run_now,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone="UTC"),
            id=RUNNER_JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.scheduler_misfire_grace_time,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started, running due tasks every {self.interval_seconds}s")

    async def shutdown(self, wait: bool = True) -> None:
        if not self.started:
            return

        self.scheduler.shutdown(wait=wait)
        # AsyncIOScheduler finishes shutting down in a loop callback.
        await asyncio.sleep(0)
        if self._lock_manager is not None:
            await self._lock_manager.close()
            self._lock_manager = None
        logger.info("Scheduler stopped")

    def get_job(self) -> Optional[Job]:
        return self.scheduler.get_job(RUNNER_JOB_ID)


scheduler_service = SchedulerService()


async def run_forever() -> None:
    from gitfarm.monitoring.logging import setup_logging

    setup_logging()
    await scheduler_service.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler_service.shutdown()


if __name__ == "__main__":
    asyncio.run(run_forever())
