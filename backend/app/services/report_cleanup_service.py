"""
Report Cleanup Service
======================

Scheduled sweeps over the job table:

- ``purge_expired``: records past ``expires_at`` (and their files)
- ``fail_stale``: jobs stuck in ``processing`` for over an hour
- ``purge_old_terminal``: failed/cancelled jobs older than the retention window

Each sweep opens its own session and commits in batches. ``run_all`` keeps
going when one sweep fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models.base import utc_now
from app.models.report_job import RETRYABLE_STATUSES, ReportJob, ReportStatus
from app.services.report_job_store import ReportJobStore
from app.services.report_storage import BlobStore


logger = logging.getLogger(__name__)

STALE_MESSAGE = "Report processing timed out after 1 hour"


class ReportCleanupService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore | None = None,
        *,
        stale_after: timedelta | None = None,
        terminal_retention: timedelta | None = None,
        batch_size: int | None = None,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.stale_after = stale_after or timedelta(minutes=settings.REPORT_STALE_AFTER_MINUTES)
        self.terminal_retention = terminal_retention or timedelta(days=settings.REPORT_TERMINAL_RETENTION_DAYS)
        self.batch_size = batch_size or settings.REPORT_SWEEP_BATCH_SIZE

    async def _delete_blob(self, reference: str | None) -> None:
        if not reference or self.blob_store is None:
            return
        try:
            await self.blob_store.delete(self.blob_store.key_for(reference))
        except Exception as e:
            logger.warning("Could not delete report file %s: %s", reference, e)

    async def purge_expired(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        deleted = 0
        while True:
            async with self.session_factory() as session:
                res = await session.execute(
                    select(ReportJob.id, ReportJob.file_reference)
                    .where(ReportJob.expires_at.is_not(None), ReportJob.expires_at < now)
                    .limit(self.batch_size)
                )
                batch = res.all()
                if not batch:
                    break
                deleted += await ReportJobStore(session).delete_many([row.id for row in batch])
                await session.commit()

            for row in batch:
                await self._delete_blob(row.file_reference)
            if len(batch) < self.batch_size:
                break

        if deleted:
            logger.info("Purged %s expired report jobs", deleted)
        return deleted

    async def fail_stale(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        cutoff = now - self.stale_after
        async with self.session_factory() as session:
            res = await session.execute(
                select(ReportJob.id).where(
                    ReportJob.status == ReportStatus.PROCESSING.value,
                    func.coalesce(ReportJob.started_at, ReportJob.created_at) < cutoff,
                )
            )
            job_ids = list(res.scalars().all())

            store = ReportJobStore(session)
            failed = 0
            for job_id in job_ids:
                job = await store.compare_and_set(
                    job_id,
                    {ReportStatus.PROCESSING.value},
                    ReportStatus.FAILED.value,
                    reason="stale",
                    error_message=STALE_MESSAGE,
                    completed_at=now,
                )
                if job is not None:
                    failed += 1
            await session.commit()

        if failed:
            logger.warning("Marked %s stale report jobs as failed", failed)
        return failed

    async def purge_old_terminal(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        cutoff = now - self.terminal_retention
        deleted = 0
        while True:
            async with self.session_factory() as session:
                res = await session.execute(
                    select(ReportJob.id)
                    .where(ReportJob.status.in_(list(RETRYABLE_STATUSES)), ReportJob.created_at < cutoff)
                    .limit(self.batch_size)
                )
                job_ids = list(res.scalars().all())
                if not job_ids:
                    break
                deleted += await ReportJobStore(session).delete_many(job_ids)
                await session.commit()
            if len(job_ids) < self.batch_size:
                break

        if deleted:
            logger.info("Purged %s old failed/cancelled report jobs", deleted)
        return deleted

    async def run_all(self, now: datetime | None = None) -> dict[str, int | str]:
        now = now or utc_now()
        results: dict[str, int | str] = {}
        for name, sweep in (
            ("expired", self.purge_expired),
            ("stale", self.fail_stale),
            ("old_terminal", self.purge_old_terminal),
        ):
            try:
                results[name] = await sweep(now)
            except Exception as e:
                logger.exception("Report cleanup sweep %s failed", name)
                results[name] = f"error: {type(e).__name__}"
        return results
