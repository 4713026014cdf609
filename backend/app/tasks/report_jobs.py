"""Report generation tasks."""

from __future__ import annotations

import asyncio

from celery.utils.log import get_task_logger

from app.core.celery_app import celery_app
from app.core.database import create_worker_session_factory
from app.middleware.prometheus import record_celery_task
from app.services.report_queue import CeleryReportQueue, QueueEntry, QueuePolicy
from app.services.report_worker import RetryableGenerationError, build_report_worker


logger = get_task_logger(__name__)


def _run_async(coro):
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None

    if loop is not None and loop.is_running():
        new_loop = asyncio.new_event_loop()
        try:
            return new_loop.run_until_complete(coro)
        finally:
            new_loop.close()

    return asyncio.run(coro)


async def _generate(entry: QueueEntry, attempt: int, final: bool) -> str:
    # Fresh engine per task: asyncpg connections cannot cross event loops.
    engine, session_factory = create_worker_session_factory()
    worker = build_report_worker(session_factory)
    try:
        return await worker.process(entry, attempt, final)
    finally:
        await worker.drain()
        await engine.dispose()


@celery_app.task(bind=True, name="app.tasks.report_jobs.generate_report_task")
def generate_report_task(self, entry: dict, policy: dict | None = None):
    """Run one generation attempt for a queued report job.

    Transient failures are re-delivered through Celery's retry with the
    entry's backoff policy; the job stays ``processing`` in between.
    """
    queue_policy = QueuePolicy.from_payload(policy)
    queue_entry = QueueEntry.from_payload(entry)
    attempt = int(self.request.retries or 0) + 1
    queue_entry.attempt = attempt
    final = queue_policy.is_final(attempt)

    try:
        outcome = _run_async(_generate(queue_entry, attempt, final))
    except RetryableGenerationError as e:
        logger.warning("Report job %s attempt %s will be retried: %s", e.job_id, attempt, e.message)
        raise self.retry(
            exc=e,
            countdown=queue_policy.delay_for(attempt),
            max_retries=max(0, queue_policy.max_attempts - 1),
        )
    except Exception:
        logger.exception("Report generation task crashed for entry %s", queue_entry.id)
        CeleryReportQueue.record_outcome(queue_entry, succeeded=False, policy=queue_policy)
        record_celery_task("generate_report_task", success=False)
        raise

    succeeded = outcome != "failed"
    CeleryReportQueue.record_outcome(queue_entry, succeeded=succeeded, policy=queue_policy)
    record_celery_task("generate_report_task", success=succeeded)
    return {"ok": succeeded, "job_id": queue_entry.job_id, "outcome": outcome, "attempt": attempt}
