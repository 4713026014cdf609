"""
Pydantic Schemas
================

Request and response schemas for API validation.
"""

from app.schemas.base import BaseSchema, ErrorResponse, PaginatedResponse
from app.schemas.report import (
    GenerateReportAccepted,
    GenerateReportRequest,
    QueueStatsResponse,
    ReportJobResponse,
    ReportJobStatusResponse,
    ReportTemplateCreate,
    ReportTemplateResponse,
)

__all__ = [
    "BaseSchema",
    "ErrorResponse",
    "PaginatedResponse",
    "GenerateReportAccepted",
    "GenerateReportRequest",
    "QueueStatsResponse",
    "ReportJobResponse",
    "ReportJobStatusResponse",
    "ReportTemplateCreate",
    "ReportTemplateResponse",
]
