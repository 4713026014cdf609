from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator

from app.schemas.base import BaseSchema


FILTER_KEY_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,49}$")
FORBIDDEN_FILTER_CHARS = re.compile(r"[<>{}]")

MAX_FILTER_STRING = 1000
MAX_FILTER_ARRAY = 100
MAX_NESTED_KEYS = 10

ExportFormat = Literal["excel", "csv", "pdf", "json"]


def _check_filter_scalar(key: str, value: Any) -> None:
    if isinstance(value, str):
        if len(value) > MAX_FILTER_STRING:
            raise ValueError(f"Filter '{key}' exceeds {MAX_FILTER_STRING} characters")
        if FORBIDDEN_FILTER_CHARS.search(value):
            raise ValueError(f"Filter '{key}' contains forbidden characters")
    elif value is not None and not isinstance(value, (bool, int, float)):
        raise ValueError(f"Filter '{key}' has an unsupported value type")


def _check_filter_value(key: str, value: Any) -> None:
    if isinstance(value, list):
        if len(value) > MAX_FILTER_ARRAY:
            raise ValueError(f"Filter '{key}' has more than {MAX_FILTER_ARRAY} items")
        for item in value:
            _check_filter_scalar(key, item)
    elif isinstance(value, dict):
        if len(value) > MAX_NESTED_KEYS:
            raise ValueError(f"Filter '{key}' has more than {MAX_NESTED_KEYS} keys")
        for nested_key, nested in value.items():
            if not FILTER_KEY_PATTERN.match(str(nested_key)):
                raise ValueError(f"Invalid filter key '{key}.{nested_key}'")
            _check_filter_scalar(f"{key}.{nested_key}", nested)
    else:
        _check_filter_scalar(key, value)


class ReportConfigFields(BaseSchema):
    columns: List[str] = Field(default_factory=list, max_length=100)
    filters: Dict[str, Any] = Field(default_factory=dict)
    group_by: Optional[str] = Field(None, max_length=100)
    sort_by: Optional[str] = Field(None, max_length=100)
    sort_order: Optional[Literal["asc", "desc"]] = None

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: List[str]) -> List[str]:
        for column in v:
            if len(column) > 100:
                raise ValueError("Column ids must be at most 100 characters")
        return v

    @field_validator("filters")
    @classmethod
    def validate_filters(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in v.items():
            if not FILTER_KEY_PATTERN.match(key):
                raise ValueError(f"Invalid filter key '{key}'")
            _check_filter_value(key, value)
        return v


class GenerateReportRequest(ReportConfigFields):
    """Request a report run."""

    type: str = Field(..., min_length=1, max_length=100)
    format: ExportFormat = "excel"


class GenerateReportAccepted(BaseSchema):
    job_id: str
    status: str


class ReportJobStatusResponse(BaseSchema):
    id: str
    report_type: str
    report_name: str
    format: str
    status: str

    total_records: Optional[int] = None
    file_size: Optional[int] = None
    error_message: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ReportJobResponse(ReportJobStatusResponse):
    configuration: Dict[str, Any] = Field(default_factory=dict)
    file_reference: Optional[str] = None
    requested_by: str
    institution_id: Optional[str] = None
    attempts: int = 0
    updated_at: datetime
    expires_at: Optional[datetime] = None


class QueueStatsResponse(BaseSchema):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    available: bool = True
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class CatalogReportItem(BaseSchema):
    type: str
    name: str
    description: str
    icon: str
    category: str
    columns_count: int
    filters_count: int


class CatalogCategory(BaseSchema):
    key: str
    label: str
    icon: str
    reports: List[CatalogReportItem]


class ReportColumnSchema(BaseSchema):
    id: str
    label: str
    type: str
    default: bool = True
    sortable: bool = True
    width: int = 15


class FilterOptionSchema(BaseSchema):
    label: str
    value: Any = None


class ReportFilterSchema(BaseSchema):
    id: str
    label: str
    type: str
    required: bool = False
    dynamic: bool = False
    options: List[FilterOptionSchema] = Field(default_factory=list)


class ReportDefinitionResponse(BaseSchema):
    type: str
    name: str
    description: str
    category: str
    icon: str
    columns: List[ReportColumnSchema]
    filters: List[ReportFilterSchema]
    group_by: List[str] = Field(default_factory=list)
    export_formats: List[str]
    available_for: List[str]

    @field_validator("available_for", mode="before")
    @classmethod
    def sort_roles(cls, v):
        return sorted(v)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class ReportTemplateCreate(ReportConfigFields):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    report_type: str = Field(..., min_length=1, max_length=100)
    is_public: bool = False


class ReportTemplateResponse(BaseSchema):
    id: str
    name: str
    description: Optional[str] = None
    report_type: str
    columns: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)
    group_by: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    is_public: bool
    created_by: str
    created_at: datetime
    updated_at: datetime
