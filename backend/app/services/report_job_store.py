"""
Report Job Store
================

Persistence for report jobs. Every status change goes through
``compare_and_set`` so concurrent writers (API cancel, worker finalize,
stale reaper) are arbitrated by the database instead of by timing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import generate_uuid, utc_now
from app.models.report_job import (
    ACTIVE_STATUSES,
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    ReportJob,
    ReportJobTransition,
    ReportStatus,
)


logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX = 2000

# Lost CAS races are retried this many times before giving up.
_CAS_ATTEMPTS = 3


def truncate_error(message: str | None) -> str:
    return (message or "Unknown error")[:ERROR_MESSAGE_MAX]


class ReportJobStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        report_type: str,
        report_name: str,
        configuration: dict[str, Any],
        format: str,
        requested_by: str,
        institution_id: str | None,
        expires_at: datetime,
        queue_entry_id: str,
    ) -> ReportJob:
        job = ReportJob(
            id=generate_uuid(),
            report_type=report_type,
            report_name=report_name,
            configuration=configuration,
            format=format,
            status=ReportStatus.PENDING.value,
            requested_by=requested_by,
            institution_id=institution_id,
            expires_at=expires_at,
            queue_entry_id=queue_entry_id,
            attempts=0,
        )
        self.session.add(job)
        self.session.add(
            ReportJobTransition(job_id=job.id, from_status=None, to_status=ReportStatus.PENDING.value)
        )
        await self.session.flush()
        return job

    async def get(self, job_id: str) -> ReportJob | None:
        res = await self.session.execute(
            select(ReportJob).where(ReportJob.id == job_id).execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def _current_status(self, job_id: str) -> str | None:
        res = await self.session.execute(select(ReportJob.status).where(ReportJob.id == job_id))
        return res.scalar_one_or_none()

    async def compare_and_set(
        self,
        job_id: str,
        expected: Iterable[str],
        new_status: str,
        *,
        entry_id: str | None = None,
        reason: str | None = None,
        **values: Any,
    ) -> ReportJob | None:
        """
        Atomically move ``job_id`` from one of ``expected`` to ``new_status``.

        The UPDATE is guarded on the exact status observed just before it
        (and on ``queue_entry_id`` when ``entry_id`` is given), so a writer
        that lost the race sees ``rowcount == 0``. Returns the refreshed job,
        or None when the job is gone or in a status outside ``expected``.
        """
        expected = {s.value if isinstance(s, ReportStatus) else s for s in expected}
        new_status = new_status.value if isinstance(new_status, ReportStatus) else new_status

        for _ in range(_CAS_ATTEMPTS):
            current = await self._current_status(job_id)
            if current is None or current not in expected:
                return None

            stmt = (
                update(ReportJob)
                .where(ReportJob.id == job_id, ReportJob.status == current)
                .values(status=new_status, updated_at=utc_now(), **values)
                .execution_options(synchronize_session=False)
            )
            if entry_id is not None:
                stmt = stmt.where(ReportJob.queue_entry_id == entry_id)

            result = await self.session.execute(stmt)
            if result.rowcount == 1:
                self.session.add(
                    ReportJobTransition(job_id=job_id, from_status=current, to_status=new_status, reason=reason)
                )
                await self.session.flush()
                return await self.get(job_id)

            if entry_id is not None:
                # Same status but a different entry owns the job now.
                return None

        logger.warning("Gave up on status change for job %s -> %s after repeated conflicts", job_id, new_status)
        return None

    async def list_for_user(self, user_id: str, *, page: int, limit: int) -> tuple[list[ReportJob], int]:
        total = int(
            (await self.session.execute(
                select(func.count()).select_from(ReportJob).where(ReportJob.requested_by == user_id)
            )).scalar()
            or 0
        )
        stmt = (
            select(ReportJob)
            .where(ReportJob.requested_by == user_id)
            .order_by(desc(ReportJob.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return list(rows), total

    async def list_in_statuses(
        self,
        user_id: str,
        statuses: Iterable[str],
        *,
        limit: int | None = None,
    ) -> list[ReportJob]:
        stmt = (
            select(ReportJob)
            .where(ReportJob.requested_by == user_id, ReportJob.status.in_(list(statuses)))
            .order_by(desc(ReportJob.created_at))
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_active(self, user_id: str) -> list[ReportJob]:
        return await self.list_in_statuses(user_id, ACTIVE_STATUSES)

    async def list_failed(self, user_id: str, *, limit: int = 20) -> list[ReportJob]:
        return await self.list_in_statuses(user_id, RETRYABLE_STATUSES, limit=limit)

    async def transitions(self, job_id: str) -> list[ReportJobTransition]:
        stmt = (
            select(ReportJobTransition)
            .where(ReportJobTransition.job_id == job_id)
            .order_by(ReportJobTransition.created_at.asc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def delete_terminal(self, job_id: str) -> bool:
        """Delete a job only if it is terminal at the moment of the DELETE."""
        result = await self.session.execute(
            delete(ReportJob)
            .where(ReportJob.id == job_id, ReportJob.status.in_(list(TERMINAL_STATUSES)))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self._delete_transitions([job_id])
        return True

    async def delete_many(self, job_ids: Sequence[str]) -> int:
        if not job_ids:
            return 0
        await self._delete_transitions(job_ids)
        result = await self.session.execute(
            delete(ReportJob).where(ReportJob.id.in_(list(job_ids))).execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def _delete_transitions(self, job_ids: Sequence[str]) -> None:
        await self.session.execute(
            delete(ReportJobTransition)
            .where(ReportJobTransition.job_id.in_(list(job_ids)))
            .execution_options(synchronize_session=False)
        )
