"""
Report Generation Worker
========================

Runs one delivery of a queue entry:

    claim -> fetch rows -> resolve layout -> serialize -> store -> finalize

Each step uses its own short session so no transaction is held open across
data-source or storage IO. Workers are stateless between deliveries; the
job record is the only coordination point.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.middleware.prometheus import record_report_finished
from app.models.base import utc_now
from app.models.report_job import ACTIVE_STATUSES, ReportJob, ReportStatus
from app.services.report_catalog import ReportCatalog, resolve_layout
from app.services.report_data_source import ReportDataSource
from app.services.report_errors import NoReportDataError, ReportError, ReportUpstreamError
from app.services.report_job_store import ReportJobStore, truncate_error
from app.services.report_notifications import NotificationSink
from app.services.report_queue import QueueEntry, RetryDelivery
from app.services.report_serializers import FORMAT_EXTENSIONS, serialize
from app.services.report_storage import BlobStore, KeyHints


logger = logging.getLogger(__name__)


OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_SKIPPED = "skipped"
OUTCOME_RETRYING = "retrying"
OUTCOME_DELETED = "deleted"


class RetryableGenerationError(RetryDelivery):
    """Attempt failed transiently; the job stays ``processing`` until re-delivered."""

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id
        self.message = message


def _is_permanent(exc: Exception) -> bool:
    if isinstance(exc, ReportUpstreamError):
        return not exc.retryable
    # Unknown report type, missing file, bad reference: retrying cannot help.
    return isinstance(exc, ReportError)


def _settled_outcome(current: ReportJob | None) -> str:
    """What happened to a job whose finalize lost the compare-and-set."""
    if current is None:
        return OUTCOME_DELETED
    if current.status in (ReportStatus.CANCELLED.value, ReportStatus.FAILED.value, ReportStatus.COMPLETED.value):
        return current.status
    # Re-queued under a newer entry.
    return OUTCOME_SKIPPED


def _sort_rows(rows: list[dict[str, Any]], sort_by: str | None, sort_order: str | None) -> list[dict[str, Any]]:
    if not sort_by or not rows or sort_by not in rows[0]:
        return rows

    def key(row: Mapping[str, Any]):
        value = row.get(sort_by)
        if value is None:
            return (1, 0, "")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return (0, 0, value)
        return (0, 1, str(value))

    return sorted(rows, key=key, reverse=(sort_order or "asc").lower() == "desc")


class ReportWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: ReportCatalog,
        data_source: ReportDataSource,
        blob_store: BlobStore,
        notifier: NotificationSink,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.data_source = data_source
        self.blob_store = blob_store
        self.notifier = notifier
        self._notifications: set[asyncio.Task] = set()

    async def __call__(self, entry: QueueEntry, attempt: int, final: bool) -> str:
        return await self.process(entry, attempt, final)

    async def process(self, entry: QueueEntry, attempt: int, final: bool) -> str:
        """
        Run one attempt for ``entry``.

        Returns the outcome (completed, failed, cancelled, deleted or skipped).
        Raises RetryableGenerationError when the transport should re-deliver.
        """
        started = time.monotonic()
        outcome = OUTCOME_FAILED
        try:
            outcome = await self._process(entry, attempt, final)
            return outcome
        except RetryableGenerationError:
            outcome = OUTCOME_RETRYING
            raise
        finally:
            record_report_finished(entry.report_type, outcome, time.monotonic() - started)

    async def _process(self, entry: QueueEntry, attempt: int, final: bool) -> str:
        job = await self._claim(entry, attempt)
        if job is None:
            logger.info("Skipping queue entry %s: job %s is no longer claimable", entry.id, entry.job_id)
            return OUTCOME_SKIPPED

        logger.info(
            "Generating report %s (%s, %s) attempt %s%s",
            job.id, job.report_type, job.format, attempt, " (final)" if final else "",
        )

        stored = None
        try:
            rows = await self.data_source.fetch_rows(job.report_type, job.configuration.get("filters") or {})
            if not rows:
                raise NoReportDataError()

            definition = self.catalog.get_definition(job.report_type)
            columns = resolve_layout(definition, rows, job.configuration.get("columns"))
            rows = _sort_rows(rows, job.configuration.get("sort_by"), job.configuration.get("sort_order"))

            buffer = self._render(job.report_name, columns, rows, job.format)

            stored = await self.blob_store.put(
                buffer,
                KeyHints(
                    report_type=job.report_type,
                    extension=FORMAT_EXTENSIONS[job.format],
                    institution_id=job.institution_id,
                    generated_at=utc_now(),
                    job_id=job.id,
                ),
            )
        except Exception as e:
            if isinstance(e, ReportError):
                message = e.message
            else:
                message = f"{type(e).__name__}: {e}"
                logger.exception("Unexpected error generating report %s", job.id)
            if _is_permanent(e) or final:
                logger.warning("Report job %s failed on attempt %s: %s", job.id, attempt, message)
                return await self._fail(entry, job, message)
            logger.warning("Report job %s attempt %s failed, will retry: %s", job.id, attempt, message)
            raise RetryableGenerationError(job.id, message) from e

        return await self._finalize(entry, job, stored, total_records=len(rows))

    async def _claim(self, entry: QueueEntry, attempt: int) -> ReportJob | None:
        async with self.session_factory() as session:
            store = ReportJobStore(session)
            job = await store.compare_and_set(
                entry.job_id,
                ACTIVE_STATUSES,
                ReportStatus.PROCESSING.value,
                entry_id=entry.id,
                reason=f"attempt {attempt}",
                started_at=utc_now(),
                attempts=ReportJob.attempts + 1,
            )
            await session.commit()
            return job

    def _render(self, title: str, columns: Sequence, rows: Sequence[Mapping[str, Any]], format: str) -> bytes:
        try:
            buffer = serialize(title, columns, rows, format)
        except Exception as e:
            raise ReportUpstreamError(f"Failed to render {format} file: {e}", retryable=False) from e
        if not buffer:
            raise ReportUpstreamError("Generated file buffer is empty", retryable=False)
        return buffer

    async def _finalize(self, entry: QueueEntry, job: ReportJob, stored, *, total_records: int) -> str:
        async with self.session_factory() as session:
            store = ReportJobStore(session)
            completed = await store.compare_and_set(
                job.id,
                {ReportStatus.PROCESSING.value},
                ReportStatus.COMPLETED.value,
                entry_id=entry.id,
                reason="generated",
                file_reference=stored.reference,
                file_size=stored.size,
                total_records=total_records,
                completed_at=utc_now(),
            )
            await session.commit()
            current = None if completed is not None else await store.get(job.id)

        if completed is None:
            outcome = _settled_outcome(current)
            if current is not None and current.file_reference == stored.reference:
                # A newer delivery of the same job completed onto this key.
                return outcome
            logger.info(
                "Report job %s was settled elsewhere (%s) during generation, discarding %s",
                job.id, outcome, stored.key,
            )
            try:
                await self.blob_store.delete(stored.key)
            except Exception as e:
                logger.warning("Could not delete orphaned report file %s: %s", stored.key, e)
            return outcome

        logger.info("Report job %s completed: %s records, %s bytes", job.id, total_records, stored.size)
        self._spawn_notification(
            job.requested_by,
            "Report Generated",
            f"Your {job.report_name} report has been generated successfully.",
            {"reportType": job.report_type, "jobId": job.id, "fileReference": stored.reference},
        )
        return OUTCOME_COMPLETED

    async def _fail(self, entry: QueueEntry, job: ReportJob, message: str) -> str:
        async with self.session_factory() as session:
            store = ReportJobStore(session)
            failed = await store.compare_and_set(
                job.id,
                {ReportStatus.PROCESSING.value},
                ReportStatus.FAILED.value,
                entry_id=entry.id,
                reason="generation failed",
                error_message=truncate_error(message),
                completed_at=utc_now(),
            )
            await session.commit()
            if failed is None:
                outcome = _settled_outcome(await store.get(job.id))
                logger.info("Report job %s was settled elsewhere (%s) before it could fail", job.id, outcome)
                return outcome
        return OUTCOME_FAILED

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _spawn_notification(self, user_id: str, title: str, message: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._notify(user_id, title, message, payload))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _notify(self, user_id: str, title: str, message: str, payload: dict[str, Any]) -> None:
        try:
            await self.notifier.notify(user_id, title, message, payload)
        except Exception as e:
            logger.warning("Report notification for user %s failed: %s", user_id, e)

    async def drain(self) -> None:
        """Wait for notifications spawned so far."""
        if self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)


def build_report_worker(session_factory: async_sessionmaker[AsyncSession] | None = None) -> ReportWorker:
    # Lazy imports keep the API process from building storage clients at import time
    from app.core.database import async_session_factory
    from app.services.report_catalog import get_report_catalog
    from app.services.report_data_source import get_report_data_source
    from app.services.report_notifications import get_notification_sink
    from app.services.report_storage import get_blob_store

    return ReportWorker(
        session_factory or async_session_factory,
        get_report_catalog(),
        get_report_data_source(),
        get_blob_store(),
        get_notification_sink(),
    )
