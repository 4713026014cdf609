"""Report data-source adapter.

Rows and dynamic filter options come from the application that owns the
institution/student data. This service only reads them over HTTP; it never
aggregates anything itself.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Mapping

import httpx

from app.core.config import settings
from app.services.report_errors import ReportUpstreamError


logger = logging.getLogger(__name__)


Row = dict[str, Any]


class ReportDataSource(abc.ABC):
    @abc.abstractmethod
    async def fetch_rows(self, report_type: str, filters: Mapping[str, Any]) -> list[Row]:
        """Flat records for one report run. Shape is only key/value."""

    @abc.abstractmethod
    async def fetch_filter_options(self, filter_id: str, scope: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Ordered ``{label, value}`` options for a dynamic filter."""


class HttpReportDataSource(ReportDataSource):
    """
    JSON-over-HTTP adapter.

    Contract:
        POST {base}/reports/{type}/rows   {"filters": {...}}  -> {"rows": [...]}
        GET  {base}/filters/{id}/options  ?<scope>            -> {"options": [...]}
    """

    def __init__(self, base_url: str | None, *, token: str | None = None, timeout: float = 30.0):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.base_url:
            raise ReportUpstreamError("Report data source is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                resp = await client.request(method, f"{self.base_url}{path}", **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            # 4xx means the request itself is wrong; retrying will not help.
            retryable = e.response.status_code >= 500 or e.response.status_code == 429
            raise ReportUpstreamError(
                f"Data source returned HTTP {e.response.status_code}", retryable=retryable
            ) from e
        except httpx.HTTPError as e:
            raise ReportUpstreamError(f"Data source unreachable: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ReportUpstreamError("Data source returned invalid JSON", retryable=False) from e

    async def fetch_rows(self, report_type: str, filters: Mapping[str, Any]) -> list[Row]:
        data = await self._request("POST", f"/reports/{report_type}/rows", json={"filters": dict(filters)})
        rows = data.get("rows") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise ReportUpstreamError("Data source response missing 'rows' list", retryable=False)
        return [dict(r) for r in rows if isinstance(r, Mapping)]

    async def fetch_filter_options(self, filter_id: str, scope: Mapping[str, Any]) -> list[dict[str, Any]]:
        params = {k: v for k, v in scope.items() if v is not None}
        data = await self._request("GET", f"/filters/{filter_id}/options", params=params)
        options = data.get("options") if isinstance(data, dict) else data
        if not isinstance(options, list):
            raise ReportUpstreamError("Data source response missing 'options' list", retryable=False)
        return [o for o in options if isinstance(o, Mapping)]


def get_report_data_source() -> ReportDataSource:
    return HttpReportDataSource(
        settings.REPORT_DATA_SOURCE_URL,
        token=settings.REPORT_DATA_SOURCE_TOKEN,
        timeout=settings.REPORT_DATA_SOURCE_TIMEOUT_SECONDS,
    )
