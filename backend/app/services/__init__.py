"""
Services module initialization.
"""

from app.services.report_catalog import ReportCatalog, get_report_catalog
from app.services.report_errors import ReportError

__all__ = [
    "ReportCatalog",
    "ReportError",
    "get_report_catalog",
]
