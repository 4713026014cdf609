"""Dynamic filter option resolution."""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Mapping

from app.services.report_catalog import ReportCatalog
from app.services.report_data_source import ReportDataSource
from app.services.report_errors import ReportNotFoundError, ReportValidationError


def academic_year_options(today: date | None = None, count: int = 5) -> list[dict[str, Any]]:
    """Last ``count`` academic years, newest first: ``2026-2027``, ``2025-2026``, ..."""
    year = (today or date.today()).year
    return [{"label": f"{y}-{y + 1}", "value": f"{y}-{y + 1}"} for y in range(year, year - count, -1)]


def year_options(today: date | None = None, count: int = 5) -> list[dict[str, Any]]:
    year = (today or date.today()).year
    return [{"label": str(y), "value": y} for y in range(year, year - count, -1)]


# Filters answered without a data-source round trip.
LOCAL_OPTION_PROVIDERS: Mapping[str, Callable[[], list[dict[str, Any]]]] = {
    "academicYear": academic_year_options,
    "year": year_options,
}


class FilterValueResolver:
    def __init__(self, catalog: ReportCatalog, data_source: ReportDataSource):
        self.catalog = catalog
        self.data_source = data_source

    async def resolve(
        self,
        report_type: str,
        filter_id: str,
        scope: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        definition = self.catalog.get_definition(report_type)
        report_filter = definition.get_filter(filter_id)
        if report_filter is None:
            raise ReportNotFoundError(f"Filter '{filter_id}' not found for report type '{report_type}'")
        if not report_filter.dynamic:
            raise ReportValidationError(f"Filter {filter_id} is not dynamic")

        local = LOCAL_OPTION_PROVIDERS.get(filter_id)
        if local is not None:
            return local()

        options = await self.data_source.fetch_filter_options(filter_id, dict(scope or {}))
        return [
            {"label": str(o.get("label", o.get("value", ""))), "value": o.get("value")}
            for o in options
        ]
