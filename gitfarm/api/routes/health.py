"""
Health Check Routes

Liveness and readiness probes.
"""

from typing import Dict, Any
from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy import text

from gitfarm.api.deps import DbSession, RedisClient
from gitfarm.config import settings
from gitfarm.core.runner.service import RUNNER_LOCK
from gitfarm.core.scheduler.distributed_lock import DistributedLockManager
from gitfarm.core.scheduler.service import scheduler_service

router = APIRouter()


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(db: DbSession, redis_client: RedisClient) -> Dict[str, Any]:
    """
    Checks the database and, when the runner lock is enabled, Redis.
    Also reports the in-process runner job if the scheduler is running.
    """
    checks: Dict[str, Dict[str, Any]] = {}
    overall_status = "ready"

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "ok"}
    except Exception as e:
        checks["database"] = {"status": "error", "error": str(e)}
        overall_status = "not_ready"

    if settings.runner_lock_enabled:
        try:
            await redis_client.ping()
            runner_busy = await DistributedLockManager(redis_client).is_locked(RUNNER_LOCK)
            checks["redis"] = {"status": "ok", "runner_in_progress": runner_busy}
        except Exception as e:
            checks["redis"] = {"status": "error", "error": str(e)}
            overall_status = "not_ready"

    if scheduler_service.started:
        job = scheduler_service.get_job()
        checks["scheduler"] = {
            "status": "ok" if job else "error",
            "next_run_time": job.next_run_time.isoformat() if job and job.next_run_time else None,
        }

    return {
        "status": overall_status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
