"""Maintenance / scheduled tasks.

Report lifecycle sweeps, run by Celery beat on the ``q.maintenance`` queue.
"""

from __future__ import annotations

from datetime import datetime, timezone

from celery.utils.log import get_task_logger

from app.core.celery_app import celery_app
from app.core.database import create_worker_session_factory
from app.services.report_cleanup_service import ReportCleanupService
from app.services.report_storage import get_blob_store
from app.tasks.report_jobs import _run_async


logger = get_task_logger(__name__)


async def _sweep_async(name: str) -> dict:
    now = datetime.now(timezone.utc)
    engine, session_factory = create_worker_session_factory()
    try:
        service = ReportCleanupService(session_factory, get_blob_store())
        sweep = getattr(service, name)
        affected = await sweep(now)
    finally:
        await engine.dispose()

    return {
        "ok": True,
        "sweep": name,
        "affected": int(affected),
        "ran_at": now.isoformat(),
    }


@celery_app.task(bind=True)
def purge_expired_reports_task(self):
    """Delete report jobs past their expiry, with their stored files."""
    try:
        return _run_async(_sweep_async("purge_expired"))
    except Exception as e:
        logger.exception("Purge expired reports task failed")
        raise e


@celery_app.task(bind=True)
def fail_stale_reports_task(self):
    """Fail jobs that have been processing for longer than the stale window."""
    try:
        return _run_async(_sweep_async("fail_stale"))
    except Exception as e:
        logger.exception("Fail stale reports task failed")
        raise e


@celery_app.task(bind=True)
def purge_old_terminal_reports_task(self):
    """Delete failed and cancelled jobs older than the retention window."""
    try:
        return _run_async(_sweep_async("purge_old_terminal"))
    except Exception as e:
        logger.exception("Purge old terminal reports task failed")
        raise e
