"""Celery application configuration.

- One queue for report generation, one for maintenance sweeps
- Explicit routing per task type
- Import-safe defaults (memory broker) for unit tests
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from app.core.config import settings


def _default_broker() -> str:
    # Keep imports safe in dev/tests even without Redis.
    return settings.CELERY_BROKER_URL or "memory://"


def _default_backend() -> str:
    # Cache-like in-memory backend for tests.
    return settings.CELERY_RESULT_BACKEND or "cache+memory://"


def broker_enabled() -> bool:
    broker = celery_app.conf.broker_url
    return bool(broker) and not str(broker).startswith("memory://")


celery_app = Celery(
    "reports",
    broker=_default_broker(),
    backend=_default_backend(),
    include=[
        "app.tasks.report_jobs",
        "app.tasks.maintenance",
    ],
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.REPORT_WORKER_CONCURRENCY,
    task_default_queue=settings.REPORT_QUEUE_NAME,
    task_queues=(
        Queue(settings.REPORT_QUEUE_NAME),
        Queue("q.maintenance"),
    ),
    task_routes={
        "app.tasks.report_jobs.generate_report_task": {"queue": settings.REPORT_QUEUE_NAME},
        "app.tasks.maintenance.purge_expired_reports_task": {"queue": "q.maintenance"},
        "app.tasks.maintenance.fail_stale_reports_task": {"queue": "q.maintenance"},
        "app.tasks.maintenance.purge_old_terminal_reports_task": {"queue": "q.maintenance"},
    },
    beat_schedule={
        # Daily at 03:00 UTC
        "purge-expired-reports": {
            "task": "app.tasks.maintenance.purge_expired_reports_task",
            "schedule": crontab(minute=0, hour=3),
            "args": (),
        },
        "fail-stale-reports": {
            "task": "app.tasks.maintenance.fail_stale_reports_task",
            "schedule": crontab(minute="*/30"),
            "args": (),
        },
        # Sundays at 04:00 UTC
        "purge-old-terminal-reports": {
            "task": "app.tasks.maintenance.purge_old_terminal_reports_task",
            "schedule": crontab(minute=0, hour=4, day_of_week=0),
            "args": (),
        },
    },
)
