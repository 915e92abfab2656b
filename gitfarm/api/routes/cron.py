"""
Cron Trigger Route

Endpoint hit by an external scheduler to run due tasks.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from gitfarm.api.deps import GitHubFactoryDep, LockManagerDep, SessionMaker, verify_cron_secret
from gitfarm.core.runner.service import trigger_runner

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.api_route("/run-tasks", methods=["GET", "POST"])
async def run_tasks(
    session_maker: SessionMaker,
    lock_manager: LockManagerDep,
    github_factory: GitHubFactoryDep,
) -> Dict[str, Any]:
    """
    Run every due task once.

    Protected by ``Authorization: Bearer <CRON_SECRET>`` when a secret is
    configured.
    """
    try:
        result = await trigger_runner(
            session_maker,
            lock_manager=lock_manager,
            github_factory=github_factory,
        )
    except Exception as e:
        logger.exception("Task execution error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    if result["status"] == "skipped":
        return {"success": True, "message": "Another runner is in progress", **result}
    return {"success": True, "message": "Tasks execution triggered", **result}
