"""
Report Job Lifecycle Service
============================

The only API-side writer of report job state. Every operation keeps the
durable record and the work queue consistent:

- the job row is committed before its queue entry is submitted, so a crash
  in between leaves an orphaned ``pending`` row, never an entry without a row
- status changes go through ``ReportJobStore.compare_and_set``
- cancel, retry and delete are restricted to the requesting user
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.middleware.prometheus import record_report_enqueued
from app.models.base import generate_uuid, utc_now
from app.models.report_job import (
    ACTIVE_STATUSES,
    RETRYABLE_STATUSES,
    ReportJob,
    ReportStatus,
)
from app.services.filter_values import FilterValueResolver
from app.services.report_catalog import ReportCatalog, ReportDefinition
from app.services.report_errors import (
    ReportConflictError,
    ReportForbiddenError,
    ReportNotFoundError,
    ReportQueueUnavailableError,
    ReportValidationError,
)
from app.services.report_job_store import ReportJobStore
from app.services.report_queue import QueueEntry, QueuePolicy, QueueStats, ReportQueue
from app.services.report_serializers import FORMAT_EXTENSIONS
from app.services.report_storage import BlobStore, content_type_for


logger = logging.getLogger(__name__)

CANCEL_REASON = "Cancelled by user"


@dataclass(frozen=True)
class Requester:
    user_id: str
    role: str | None = None
    institution_id: str | None = None


@dataclass(frozen=True)
class ReportConfig:
    columns: tuple[str, ...] = ()
    filters: dict[str, Any] | None = None
    group_by: str | None = None
    sort_by: str | None = None
    sort_order: str | None = None
    format: str = "excel"

    def to_configuration(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "filters": dict(self.filters or {}),
            "group_by": self.group_by,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }


@dataclass(frozen=True)
class ReportDownload:
    content: bytes
    content_type: str
    filename: str


class ReportJobService:
    def __init__(
        self,
        session: AsyncSession,
        queue: ReportQueue,
        catalog: ReportCatalog,
        *,
        policy: QueuePolicy | None = None,
        blob_store: BlobStore | None = None,
    ):
        self.session = session
        self.store = ReportJobStore(session)
        self.queue = queue
        self.catalog = catalog
        self.policy = policy or QueuePolicy.from_settings()
        self.blob_store = blob_store

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _prepare(self, requester: Requester, report_type: str, config: ReportConfig) -> tuple[ReportDefinition, dict]:
        definition = self.catalog.get_definition(report_type)

        if config.format not in definition.export_formats:
            raise ReportValidationError(
                f"Format '{config.format}' is not supported for {report_type}; "
                f"expected one of {', '.join(definition.export_formats)}"
            )

        configuration = config.to_configuration()
        filters = configuration["filters"]
        if not filters.get("institutionId") and requester.institution_id:
            filters["institutionId"] = requester.institution_id

        missing = [f.id for f in definition.filters if f.required and filters.get(f.id) in (None, "", [])]
        if missing:
            raise ReportValidationError(f"Missing required filters: {', '.join(missing)}")

        return definition, configuration

    async def _submit(self, job: ReportJob) -> None:
        entry = QueueEntry(
            id=job.queue_entry_id,
            job_id=job.id,
            user_id=job.requested_by,
            report_type=job.report_type,
            config={**job.configuration, "format": job.format},
        )
        try:
            await self.queue.add(entry, self.policy)
        except Exception as e:
            # The row is already committed; it stays pending until the owner
            # cancels and retries it.
            logger.exception("Failed to enqueue report job %s", job.id)
            raise ReportQueueUnavailableError(
                "Report queue is unavailable; the request was recorded but not scheduled"
            ) from e

    async def _create_and_submit(self, requester: Requester, report_type: str, config: ReportConfig) -> ReportJob:
        definition, configuration = self._prepare(requester, report_type, config)

        job = await self.store.create(
            report_type=definition.type,
            report_name=definition.title,
            configuration=configuration,
            format=config.format,
            requested_by=requester.user_id,
            institution_id=configuration["filters"].get("institutionId"),
            expires_at=utc_now() + timedelta(days=settings.REPORT_JOB_TTL_DAYS),
            queue_entry_id=generate_uuid(),
        )
        await self.session.commit()

        await self._submit(job)
        record_report_enqueued(definition.type)
        logger.info("Report job %s queued (%s, %s) for user %s", job.id, job.report_type, job.format, job.requested_by)
        return job

    async def enqueue(self, requester: Requester, report_type: str, config: ReportConfig) -> ReportJob:
        return await self._create_and_submit(requester, report_type, config)

    async def generate_sync(self, requester: Requester, report_type: str, config: ReportConfig) -> ReportJob:
        """
        Accept and track, like ``enqueue``, but report the job as
        ``processing`` straight away. Generation still happens on a worker;
        callers poll ``get_status`` for the outcome.
        """
        job = await self._create_and_submit(requester, report_type, config)
        claimed = await self.store.compare_and_set(
            job.id,
            {ReportStatus.PENDING.value},
            ReportStatus.PROCESSING.value,
            reason="accepted for immediate generation",
            started_at=utc_now(),
        )
        await self.session.commit()
        # A fast worker may already have moved it on.
        return claimed or await self.store.get(job.id) or job

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_status(self, job_id: str) -> ReportJob | None:
        return await self.store.get(job_id)

    async def get_job(self, job_id: str) -> ReportJob:
        job = await self.store.get(job_id)
        if job is None:
            raise ReportNotFoundError("Report not found")
        return job

    async def list_history(self, requester: Requester, *, page: int = 1, limit: int = 10) -> tuple[list[ReportJob], int]:
        return await self.store.list_for_user(requester.user_id, page=page, limit=limit)

    async def list_active(self, requester: Requester) -> list[ReportJob]:
        return await self.store.list_active(requester.user_id)

    async def list_failed(self, requester: Requester) -> list[ReportJob]:
        return await self.store.list_failed(requester.user_id, limit=settings.REPORT_FAILED_LIST_LIMIT)

    async def queue_stats(self) -> QueueStats:
        try:
            return await self.queue.stats()
        except Exception as e:
            logger.warning("Queue stats failed: %s", e)
            return QueueStats.unavailable(f"{type(e).__name__}: {e}")

    # ------------------------------------------------------------------
    # Owner actions
    # ------------------------------------------------------------------

    async def _owned_job(self, job_id: str, requester: Requester) -> ReportJob:
        job = await self.get_job(job_id)
        if job.requested_by != requester.user_id:
            raise ReportForbiddenError("You can only manage your own reports")
        return job

    async def cancel(self, job_id: str, requester: Requester) -> ReportJob:
        job = await self._owned_job(job_id, requester)
        if job.status not in ACTIVE_STATUSES:
            raise ReportConflictError(f"Cannot cancel a report with status: {job.status}")

        if job.queue_entry_id:
            try:
                await self.queue.remove(job.queue_entry_id)
            except Exception as e:
                logger.warning("Could not remove queue entry %s for job %s: %s", job.queue_entry_id, job.id, e)

        cancelled = await self.store.compare_and_set(
            job.id,
            ACTIVE_STATUSES,
            ReportStatus.CANCELLED.value,
            reason=CANCEL_REASON,
            cancel_reason=CANCEL_REASON,
            completed_at=utc_now(),
        )
        if cancelled is None:
            await self.session.rollback()
            current = await self.store.get(job.id)
            status = current.status if current else "deleted"
            raise ReportConflictError(f"Cannot cancel a report with status: {status}")

        await self.session.commit()
        logger.info("Report job %s cancelled by %s", job.id, requester.user_id)
        return cancelled

    async def retry(self, job_id: str, requester: Requester) -> ReportJob:
        job = await self._owned_job(job_id, requester)
        if job.status not in RETRYABLE_STATUSES:
            raise ReportConflictError(f"Only failed or cancelled reports can be retried (status: {job.status})")

        previous_reference = job.file_reference
        reset = await self.store.compare_and_set(
            job.id,
            RETRYABLE_STATUSES,
            ReportStatus.PENDING.value,
            reason="retry requested",
            queue_entry_id=generate_uuid(),
            error_message=None,
            cancel_reason=None,
            file_reference=None,
            file_size=None,
            total_records=None,
            started_at=None,
            completed_at=None,
            attempts=0,
            expires_at=utc_now() + timedelta(days=settings.REPORT_JOB_TTL_DAYS),
        )
        if reset is None:
            await self.session.rollback()
            raise ReportConflictError("Report changed state while retrying; reload and try again")
        await self.session.commit()

        if previous_reference:
            logger.debug("Retried job %s had a stale file reference %s", job.id, previous_reference)

        await self._submit(reset)
        logger.info("Report job %s re-queued by %s", job.id, requester.user_id)
        return reset

    async def delete(self, job_id: str, requester: Requester) -> None:
        job = await self._owned_job(job_id, requester)
        if job.status in ACTIVE_STATUSES:
            raise ReportConflictError("Cannot delete a report that is still pending or processing. Cancel it first.")

        reference = job.file_reference
        if not await self.store.delete_terminal(job.id):
            await self.session.rollback()
            raise ReportConflictError("Report changed state while deleting; reload and try again")
        await self.session.commit()

        if reference and self.blob_store is not None:
            try:
                await self.blob_store.delete(self.blob_store.key_for(reference))
            except Exception as e:
                logger.warning("Could not delete stored file for report %s: %s", job.id, e)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def download(self, job_id: str) -> ReportDownload:
        if self.blob_store is None:
            raise RuntimeError("ReportJobService.download requires a blob store")

        job = await self.get_job(job_id)
        if job.status != ReportStatus.COMPLETED.value:
            raise ReportConflictError(f"Report is not ready for download (status: {job.status})")

        # Reject bad references before touching storage.
        key = self.blob_store.key_for(job.file_reference)
        content = await self.blob_store.get(key)

        ext = FORMAT_EXTENSIONS.get(job.format) or key.rsplit(".", 1)[-1]
        stamp = (job.completed_at or job.created_at or utc_now()).strftime("%Y-%m-%d")
        return ReportDownload(
            content=content,
            content_type=content_type_for(key),
            filename=f"{job.report_type}_{stamp}.{ext}",
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def list_catalog(self, role: str | None) -> list[dict[str, Any]]:
        return self.catalog.list_catalog(role)

    def get_definition(self, report_type: str) -> ReportDefinition:
        return self.catalog.get_definition(report_type)

    async def resolve_filter_values(
        self,
        resolver: FilterValueResolver,
        report_type: str,
        filter_id: str,
        requester: Requester,
        institution_id: str | None = None,
    ) -> list[dict[str, Any]]:
        scope = {"institutionId": institution_id or requester.institution_id}
        return await resolver.resolve(report_type, filter_id, scope)
