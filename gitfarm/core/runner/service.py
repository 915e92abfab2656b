"""
Task Runner

Walks due, active tasks one at a time and, for each, builds and publishes
commit chains on its target repositories. Every repository attempt ends in
exactly one TaskLog row, committed as soon as the attempt ends; failures are
isolated to the repository they happened on.

Credits are debited once the commit chain is built and refunded when the
branch update is rejected, so a repository is only charged for commits that
actually landed.
"""

import enum
import random
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gitfarm.config import settings
from gitfarm.core.commits.batch import (
    CommitAuthor,
    backdated_descriptors,
    build_commit_chain,
    validate_repository,
)
from gitfarm.core.commits.repository import get_repo_state, push_changes
from gitfarm.core.github.errors import GitHubError
from gitfarm.core.github.tokens import GitHubFactory, default_github_factory, get_github_token
from gitfarm.core.ledger import CreditLedger
from gitfarm.core.runner.schedule import next_run_after
from gitfarm.core.runner.selection import RepoTarget, select_targets
from gitfarm.core.scheduler.distributed_lock import DistributedLockManager, LockNotAcquired
from gitfarm.db.models import LogStatus, Task, TaskLog, User
from gitfarm.monitoring.logging import get_logger
from gitfarm.monitoring.metrics import (
    commits_created_counter,
    repository_attempts_counter,
    runner_duration,
    runner_invocations_counter,
    task_runs_counter,
)

logger = get_logger(__name__)

RUNNER_LOCK = "task-runner"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskOutcome(str, enum.Enum):
    """How a single task run ended."""
    DEACTIVATED = "deactivated"
    NO_CREDITS = "no_credits"
    NO_REPOSITORIES = "no_repositories"
    EXECUTED = "executed"


@dataclass
class RunSummary:
    """Counters for one runner invocation."""
    tasks_found: int = 0
    tasks_executed: int = 0
    tasks_failed: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def record(self, outcome: TaskOutcome) -> None:
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _Attempt:
    """Accumulates the stages of one repository attempt before it is logged."""

    def __init__(self, repository: str):
        self.repository = repository
        self.details: List[Dict[str, str]] = []

    def step(self, name: str, status: str) -> None:
        entry = {"step": name, "status": status, "timestamp": utcnow().isoformat()}
        for existing in self.details:
            if existing["step"] == name:
                existing.update(entry)
                return
        self.details.append(entry)

    def log(
        self,
        task_id: uuid.UUID,
        status: LogStatus,
        message: str,
        commits: int = 0,
        credits: int = 0,
    ) -> TaskLog:
        return TaskLog(
            task_id=task_id,
            status=status.value,
            message=message,
            commits_count=commits,
            credits_deducted=credits,
            repository=self.repository,
            details=list(self.details),
            timestamp=utcnow(),
        )


class TaskRunner:
    """
    Sequential task runner.

    Args:
        session: Database session; the runner commits after every repository
            attempt and every task
        github_factory: Builds a ``GitHubClient`` from an access token
        rng: Random source for ``RANDOM`` distribution
    """

    def __init__(
        self,
        session: AsyncSession,
        github_factory: GitHubFactory = default_github_factory,
        rng: Optional[random.Random] = None,
    ):
        self.session = session
        self.github_factory = github_factory
        self.rng = rng or random.Random()
        self.ledger = CreditLedger(session)

    async def due_tasks(self, now: datetime) -> List[Task]:
        result = await self.session.execute(
            select(Task)
            .where(
                Task.active.is_(True),
                or_(Task.next_run_at.is_(None), Task.next_run_at <= now),
            )
            .order_by(Task.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def run_due_tasks(self, now: Optional[datetime] = None) -> RunSummary:
        """Execute every due task once, then reschedule it."""
        now = now or utcnow()
        tasks = await self.due_tasks(now)
        summary = RunSummary(tasks_found=len(tasks))
        logger.info("runner_started", due_tasks=len(tasks))

        for task_id in [task.id for task in tasks]:
            # A rollback from a previous task expires every loaded instance.
            task = await self.session.get(Task, task_id, populate_existing=True)
            if task is None:
                logger.info("task_vanished", task_id=str(task_id))
                continue
            schedule, name = task.schedule, task.name
            try:
                outcome = await self.execute_task(task)
                summary.tasks_executed += 1
                summary.record(outcome)
                task_runs_counter.labels(outcome=outcome.value).inc()
            except Exception:
                logger.exception("task_failed", task_id=str(task_id), task_name=name)
                await self.session.rollback()
                summary.tasks_failed += 1
                task_runs_counter.labels(outcome="error").inc()

            await self._reschedule(task_id, schedule, now)
            await self.session.commit()

        logger.info("runner_finished", **summary.to_dict())
        return summary

    async def _reschedule(self, task_id: uuid.UUID, schedule: str, now: datetime) -> None:
        try:
            next_run = next_run_after(schedule, now)
        except ValueError:
            logger.warning("invalid_schedule", task_id=str(task_id), schedule=schedule)
            next_run = None
        values: Dict[str, Any] = {"last_run_at": now, "next_run_at": next_run}
        if next_run is None:
            # NULL next_run_at means "due", so a schedule with no fire time must deactivate.
            values["active"] = False
        await self.session.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def execute_task(self, task: Task) -> TaskOutcome:
        """Run one task: limit check, balance check, then each target repository."""
        log = logger.bind(task_id=str(task.id), task_name=task.name)

        if task.limit_reached:
            log.info("task_limit_reached", credit_limit=task.credit_limit)
            task.active = False
            await self.session.flush()
            return TaskOutcome.DEACTIVATED

        if await self.ledger.balance(task.user_id) <= 0:
            self.session.add(TaskLog(
                task_id=task.id,
                status=LogStatus.FAILED.value,
                message="User has no credits left.",
                details=[],
                timestamp=utcnow(),
            ))
            await self.session.flush()
            return TaskOutcome.NO_CREDITS

        targets = select_targets(task.repositories, task.distribution, self.rng)
        if not targets:
            self.session.add(TaskLog(
                task_id=task.id,
                status=LogStatus.FAILED.value,
                message="No repositories configured for this task.",
                details=[],
                timestamp=utcnow(),
            ))
            await self.session.flush()
            return TaskOutcome.NO_REPOSITORIES

        user = await self.session.get(User, task.user_id)
        author = CommitAuthor(
            name=user.name or settings.commit_author_fallback,
            email=user.email,
        )
        log.info("task_executing", targets=len(targets), distribution=task.distribution)

        for target in targets:
            attempt = _Attempt(target.full_name)
            entry, stop = await self._run_target(task, target, author, attempt)
            self.session.add(entry)
            # Earlier repositories stay charged and logged if a later one raises.
            await self.session.commit()
            repository_attempts_counter.labels(status=entry.status).inc()
            log.info(
                "repository_attempt",
                repository=target.full_name,
                status=entry.status,
                message=entry.message,
            )
            if stop:
                break

        return TaskOutcome.EXECUTED

    async def _run_target(
        self,
        task: Task,
        target: RepoTarget,
        author: CommitAuthor,
        attempt: _Attempt,
    ) -> Tuple[TaskLog, bool]:
        """Returns the log entry and whether the rest of the run must stop."""
        step = "Checking user credits"
        attempt.step(step, "running")
        balance = await self.ledger.balance(task.user_id)
        if balance <= 0:
            attempt.step(step, "error")
            return attempt.log(task.id, LogStatus.FAILED, "Stopped execution: Ran out of credits"), True
        attempt.step(step, "done")

        row = await self.session.execute(
            select(Task.credits_used, Task.credit_limit).where(Task.id == task.id)
        )
        credits_used, credit_limit = row.one()
        if credit_limit is not None and credits_used >= credit_limit:
            return attempt.log(
                task.id, LogStatus.SUCCESS, "Task reached credit limit during batch execution"
            ), True

        commits_to_run = min(target.commits, balance)

        step = "Connecting to GitHub"
        attempt.step(step, "running")
        try:
            token = await get_github_token(self.session, task.user_id)
        except GitHubError as e:
            attempt.step(step, "error")
            return attempt.log(task.id, LogStatus.FAILED, f"GitHub error: {e}"), False
        attempt.step(step, "done")

        async with self.github_factory(token) as client:
            step = f"Preparing {commits_to_run} commits"
            attempt.step(step, "running")
            try:
                validate_repository(target.full_name)
                state = await get_repo_state(client, target.full_name)
            except (GitHubError, ValueError) as e:
                attempt.step(step, "error")
                return attempt.log(task.id, LogStatus.FAILED, f"Repo error: {e}"), False
            attempt.step(step, "done")

            step = "Generating commits"
            attempt.step(step, "running")
            descriptors = backdated_descriptors(commits_to_run, settings.commit_message, now=utcnow())
            try:
                result = await build_commit_chain(
                    client, target.full_name, state.sha, descriptors, author
                )
            except (GitHubError, ValueError) as e:
                attempt.step(step, "error")
                return attempt.log(task.id, LogStatus.FAILED, f"Commit error: {e}"), False
            attempt.step(step, "done")

            step = "Charging credits"
            attempt.step(step, "running")
            if not await self.ledger.debit_if_sufficient(task.user_id, result.count):
                attempt.step(step, "error")
                return attempt.log(
                    task.id, LogStatus.FAILED, "Credit error: Insufficient credits"
                ), False
            attempt.step(step, "done")

            step = "Pushing changes"
            attempt.step(step, "running")
            try:
                await push_changes(client, target.full_name, state.branch, result.last_sha)
            except GitHubError as e:
                await self.ledger.grant(task.user_id, result.count)
                attempt.step(step, "error")
                return attempt.log(task.id, LogStatus.FAILED, f"Push error: {e}"), False
            attempt.step(step, "done")

        await self.session.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(credits_used=Task.credits_used + result.count)
            .execution_options(synchronize_session=False)
        )
        commits_created_counter.labels(source="task").inc(result.count)
        return attempt.log(
            task.id,
            LogStatus.SUCCESS,
            "Executed successfully.",
            commits=result.count,
            credits=result.count,
        ), False


async def _run_once(
    session_maker: async_sessionmaker,
    github_factory: GitHubFactory,
) -> RunSummary:
    start = time.monotonic()
    try:
        async with session_maker() as session:
            return await TaskRunner(session, github_factory=github_factory).run_due_tasks()
    finally:
        runner_duration.observe(time.monotonic() - start)


async def trigger_runner(
    session_maker: async_sessionmaker,
    lock_manager: Optional[DistributedLockManager] = None,
    github_factory: GitHubFactory = default_github_factory,
) -> Dict[str, Any]:
    """
    Entry point shared by the cron endpoint, the Celery task and the
    in-process scheduler.

    When ``lock_manager`` is given, an invocation that overlaps a running
    one is skipped instead of processing the same tasks twice.
    """
    try:
        if lock_manager is None:
            summary = await _run_once(session_maker, github_factory)
        else:
            async with lock_manager.held(RUNNER_LOCK, ttl=settings.runner_lock_ttl):
                summary = await _run_once(session_maker, github_factory)
    except LockNotAcquired:
        runner_invocations_counter.labels(outcome="skipped").inc()
        logger.info("runner_skipped", reason="lock held")
        return {"status": "skipped"}
    except Exception:
        runner_invocations_counter.labels(outcome="error").inc()
        raise

    runner_invocations_counter.labels(outcome="completed").inc()
    return {"status": "completed", "summary": summary.to_dict()}
