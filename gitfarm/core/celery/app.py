"""
Celery Application

Celery configuration for background commit jobs and the periodic task runner.
"""

from celery import Celery
from kombu import Queue, Exchange

from gitfarm.config import settings

celery_app = Celery(
    "gitfarm",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # Task settings
    task_acks_late=settings.celery_task_acks_late,
    task_reject_on_worker_lost=settings.celery_task_reject_on_worker_lost,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=settings.celery_worker_prefetch_multiplier,

    # Result backend settings
    result_expires=3600,

    task_time_limit=900,
    task_soft_time_limit=840,

    # Queue configuration
    task_default_queue="default",
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("runner", Exchange("runner"), routing_key="runner"),
        Queue("commits", Exchange("commits"), routing_key="commits"),
    ),
    task_routes={
        "gitfarm.core.celery.tasks.run_due_tasks": {"queue": "runner"},
        "gitfarm.core.celery.tasks.process_commit_job": {"queue": "commits"},
    },

    # Replaces the external cron script hitting /api/cron/run-tasks
    beat_schedule={
        "run-due-tasks": {
            "task": "gitfarm.core.celery.tasks.run_due_tasks",
            "schedule": float(settings.runner_interval_seconds),
        },
    },

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)

celery_app.autodiscover_tasks(["gitfarm.core.celery"])
