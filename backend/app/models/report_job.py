"""Report job models.

A ReportJob is the durable record of one generation request. Queue entries
are transient; everything needed to rebuild one lives on this row.

Status machine:
    pending -> processing -> completed | failed
    pending | processing -> cancelled
    failed | cancelled -> pending   (retry, new queue entry)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, generate_uuid, utc_now


class ReportStatus(str, Enum):
    """Report job status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({ReportStatus.PENDING.value, ReportStatus.PROCESSING.value})
TERMINAL_STATUSES = frozenset(
    {ReportStatus.COMPLETED.value, ReportStatus.FAILED.value, ReportStatus.CANCELLED.value}
)
RETRYABLE_STATUSES = frozenset({ReportStatus.FAILED.value, ReportStatus.CANCELLED.value})


class ReportJob(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "report_jobs"

    report_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    report_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # {"columns": [...], "filters": {...}, "group_by": ..., "sort_by": ..., "sort_order": ...}
    configuration: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="excel")

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ReportStatus.PENDING.value,
        doc="pending|processing|completed|failed|cancelled",
    )

    # Output (set only when completed)
    file_reference: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Set only when failed
    error_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    # Set only when cancelled
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    requested_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    institution_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Id of the only queue entry allowed to claim this job.
    queue_entry_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True, index=True)

    __table_args__ = (
        Index("ix_report_jobs_requested_by_created", "requested_by", "created_at"),
        Index("ix_report_jobs_status_started", "status", "started_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ReportJobTransition(Base):
    """Append-only status history for a report job."""

    __tablename__ = "report_job_transitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("report_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
