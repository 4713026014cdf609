"""Error taxonomy for the report subsystem.

API handlers let these propagate; ``app.main`` renders them as
``ErrorResponse`` bodies with the matching status code. Worker code
captures them into the job record instead.
"""

from __future__ import annotations


class ReportError(Exception):
    status_code: int = 500
    code: str = "report_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ReportNotFoundError(ReportError):
    status_code = 404
    code = "not_found"


class ReportForbiddenError(ReportError):
    status_code = 403
    code = "forbidden"


class ReportConflictError(ReportError):
    status_code = 409
    code = "conflict"


class ReportValidationError(ReportError):
    status_code = 400
    code = "validation_error"


class ReportUpstreamError(ReportError):
    """A collaborator (data source, serializer, blob store, broker) failed."""

    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str, *, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ReportQueueUnavailableError(ReportUpstreamError):
    status_code = 503
    code = "queue_unavailable"


class NoReportDataError(ReportUpstreamError):
    def __init__(self, message: str = "No data found for the given filters"):
        super().__init__(message, retryable=False)
