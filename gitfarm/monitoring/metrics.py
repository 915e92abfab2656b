"""
Prometheus Metrics

Metrics collection for the task runner, commit jobs and GitHub traffic.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("gitfarm_app", "GitFarm application information")

# Task runner metrics
runner_invocations_counter = Counter(
    "gitfarm_runner_invocations_total",
    "Task runner invocations",
    ["outcome"],  # completed, skipped, error
)

runner_duration = Histogram(
    "gitfarm_runner_duration_seconds",
    "Duration of one task runner invocation",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

task_runs_counter = Counter(
    "gitfarm_task_runs_total",
    "Task executions",
    ["outcome"],  # executed, deactivated, no_credits, error
)

repository_attempts_counter = Counter(
    "gitfarm_repository_attempts_total",
    "Per-repository execution attempts inside a task run",
    ["status"],  # SUCCESS, FAILED
)

# Commit metrics
commits_created_counter = Counter(
    "gitfarm_commits_created_total",
    "Commits published to GitHub",
    ["source"],  # task, job
)

credits_debited_counter = Counter(
    "gitfarm_credits_debited_total",
    "Credits debited from user balances",
)

commit_jobs_counter = Counter(
    "gitfarm_commit_jobs_total",
    "Ad-hoc commit jobs by terminal status",
    ["status"],
)

# GitHub API metrics
github_requests_counter = Counter(
    "gitfarm_github_requests_total",
    "GitHub REST API requests",
    ["method", "status_code"],
)

github_request_duration = Histogram(
    "gitfarm_github_request_duration_seconds",
    "GitHub REST API request duration in seconds",
    ["method"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def initialize_metrics(app_name: str, version: str) -> None:
    """Initialize application metrics."""
    app_info.info({
        "app_name": app_name,
        "version": version,
    })
