"""
Database Models
===============

SQLAlchemy models for the report builder.
"""

from app.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDMixin,
    generate_uuid,
    utc_now,
)
from app.models.report_job import (
    ACTIVE_STATUSES,
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    ReportJob,
    ReportJobTransition,
    ReportStatus,
)
from app.models.report_template import ReportTemplate

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDMixin",
    "generate_uuid",
    "utc_now",
    "ACTIVE_STATUSES",
    "RETRYABLE_STATUSES",
    "TERMINAL_STATUSES",
    "ReportJob",
    "ReportJobTransition",
    "ReportStatus",
    "ReportTemplate",
]
