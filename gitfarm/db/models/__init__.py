"""Database Models Package"""

from gitfarm.db.models.user import User
from gitfarm.db.models.account import Account, GITHUB_PROVIDER
from gitfarm.db.models.task import Task, Distribution
from gitfarm.db.models.task_log import TaskLog, LogStatus
from gitfarm.db.models.commit_job import CommitJob, JobStatus

__all__ = [
    "User",
    "Account",
    "GITHUB_PROVIDER",
    "Task",
    "Distribution",
    "TaskLog",
    "LogStatus",
    "CommitJob",
    "JobStatus",
]
