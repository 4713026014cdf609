"""
Report Definition Catalog
=========================

Immutable registry of report types. Built once from the static definitions
in ``app.config.report_definitions`` and shared read-only by the API and the
workers.

Role handling is deliberately permissive: role strings from upstream
identity providers are free-form, so they are normalised through an alias
map and unknown roles fall back to the broadest access level instead of
failing closed. See ``normalize_roles``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence, Union

from app.services.report_errors import ReportNotFoundError


logger = logging.getLogger(__name__)


STATE_DIRECTORATE = "STATE_DIRECTORATE"
PRINCIPAL = "PRINCIPAL"
FACULTY = "FACULTY"
STUDENT = "STUDENT"
SYSTEM_ADMIN = "SYSTEM_ADMIN"

CANONICAL_ROLES: tuple[str, ...] = (STATE_DIRECTORATE, PRINCIPAL, FACULTY, STUDENT, SYSTEM_ADMIN)

ROLE_ALIASES: Mapping[str, str] = {
    "statedashboard": STATE_DIRECTORATE,
    "state_directorate": STATE_DIRECTORATE,
    "principal": PRINCIPAL,
    "faculty": FACULTY,
    "teacher": FACULTY,
    "mentor": FACULTY,
    "faculty_supervisor": FACULTY,
    "student": STUDENT,
    "admin": SYSTEM_ADMIN,
    "system_admin": SYSTEM_ADMIN,
    "superadmin": SYSTEM_ADMIN,
}

# Granted to roles nobody recognises.
DEFAULT_ALLOW_ROLES: tuple[str, ...] = (STATE_DIRECTORATE,)

EXPORT_FORMATS: tuple[str, ...] = ("excel", "csv", "pdf", "json")


@dataclass(frozen=True)
class ReportColumn:
    id: str
    label: str
    type: str = "string"  # string | number | date | boolean
    default: bool = True
    sortable: bool = True
    width: int = 15


@dataclass(frozen=True)
class FilterOption:
    label: str
    value: Any


@dataclass(frozen=True)
class ReportFilter:
    id: str
    label: str
    type: str = "select"  # text | number | select | multiSelect | date | dateRange | boolean
    required: bool = False
    dynamic: bool = False
    options: tuple[FilterOption, ...] = ()


@dataclass(frozen=True)
class DefinedLayout:
    """Export columns registered by hand for a report type."""

    columns: tuple[ReportColumn, ...]


@dataclass(frozen=True)
class SynthesizedLayout:
    """Export columns derived from the first data row at generation time."""

    width: int = 15


ColumnLayout = Union[DefinedLayout, SynthesizedLayout]


@dataclass(frozen=True)
class ReportCategory:
    key: str
    label: str
    icon: str


@dataclass(frozen=True)
class ReportDefinition:
    type: str
    name: str
    description: str
    category: str
    icon: str
    available_for: frozenset[str]
    columns: tuple[ReportColumn, ...]
    filters: tuple[ReportFilter, ...] = ()
    group_by: tuple[str, ...] = ()
    export_formats: tuple[str, ...] = EXPORT_FORMATS
    layout: ColumnLayout = field(default_factory=SynthesizedLayout)

    def get_filter(self, filter_id: str) -> ReportFilter | None:
        for f in self.filters:
            if f.id == filter_id:
                return f
        return None

    @property
    def title(self) -> str:
        return self.name if self.name.endswith("Report") else f"{self.name} Report"


def normalize_roles(role: str | None) -> tuple[str, ...]:
    """Map a free-form role string onto canonical catalog roles.

    Resolution order:
      1. empty role -> every canonical role
      2. alias map
      3. exact canonical name, case-insensitive
      4. anything mentioning "state" or "admin" -> directorate + system admin
      5. otherwise DEFAULT_ALLOW_ROLES (default-allow, not fail-closed)
    """
    if not role or not role.strip():
        return CANONICAL_ROLES

    key = role.strip().lower()
    alias = ROLE_ALIASES.get(key)
    if alias:
        return (alias,)

    upper = role.strip().upper()
    if upper in CANONICAL_ROLES:
        return (upper,)

    if "state" in key or "admin" in key:
        return (STATE_DIRECTORATE, SYSTEM_ADMIN)

    logger.debug("Unrecognised role %r, granting default catalog access %s", role, DEFAULT_ALLOW_ROLES)
    return DEFAULT_ALLOW_ROLES


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def humanize_field(name: str) -> str:
    """``rollNumber`` / ``roll_number`` -> ``Roll Number``."""
    spaced = _CAMEL_BOUNDARY.sub(" ", name).replace("_", " ").replace("-", " ")
    return " ".join(part[:1].upper() + part[1:] for part in spaced.split())


def infer_column_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (date, datetime)):
        return "date"
    if isinstance(value, str) and _ISO_DATE.match(value):
        return "date"
    return "string"


def synthesize_columns(rows: Sequence[Mapping[str, Any]], width: int = 15) -> tuple[ReportColumn, ...]:
    if not rows:
        return ()
    first = rows[0]
    return tuple(
        ReportColumn(id=str(key), label=humanize_field(str(key)), type=infer_column_type(value), width=width)
        for key, value in first.items()
    )


def resolve_layout(
    definition: ReportDefinition,
    rows: Sequence[Mapping[str, Any]],
    selected_columns: Iterable[str] | None = None,
) -> tuple[ReportColumn, ...]:
    """Export columns for a run.

    Registered layouts are narrowed to the caller's selected columns when at
    least one of them matches; otherwise the full layout is used.
    """
    layout = definition.layout
    if isinstance(layout, DefinedLayout):
        columns = layout.columns
    elif isinstance(layout, SynthesizedLayout):
        columns = synthesize_columns(rows, width=layout.width)
    else:
        raise TypeError(f"Unsupported column layout: {layout!r}")

    selected = [c for c in (selected_columns or []) if c]
    if selected:
        by_id = {c.id: c for c in columns}
        narrowed = tuple(by_id[c] for c in selected if c in by_id)
        if narrowed:
            return narrowed
    return columns


class ReportCatalog:
    """Read-only lookup over report definitions."""

    def __init__(self, definitions: Iterable[ReportDefinition], categories: Iterable[ReportCategory]):
        self._definitions: dict[str, ReportDefinition] = {}
        for definition in definitions:
            if definition.type in self._definitions:
                raise ValueError(f"Duplicate report type: {definition.type}")
            self._definitions[definition.type] = definition
        self._categories: tuple[ReportCategory, ...] = tuple(categories)

    def __contains__(self, report_type: str) -> bool:
        return report_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def definitions(self) -> tuple[ReportDefinition, ...]:
        return tuple(self._definitions.values())

    def get_definition(self, report_type: str) -> ReportDefinition:
        definition = self._definitions.get(report_type)
        if definition is None:
            raise ReportNotFoundError(f"Report type '{report_type}' not found")
        return definition

    def visible_to(self, role: str | None) -> list[ReportDefinition]:
        roles = set(normalize_roles(role))
        return [d for d in self._definitions.values() if d.available_for & roles]

    def list_catalog(self, role: str | None) -> list[dict[str, Any]]:
        """Group the definitions visible to ``role`` by category."""
        visible = self.visible_to(role)
        groups: list[dict[str, Any]] = []
        for category in self._categories:
            reports = [
                {
                    "type": d.type,
                    "name": d.name,
                    "description": d.description,
                    "icon": d.icon,
                    "category": d.category,
                    "columns_count": len(d.columns),
                    "filters_count": len(d.filters),
                }
                for d in visible
                if d.category == category.key
            ]
            if reports:
                groups.append(
                    {"key": category.key, "label": category.label, "icon": category.icon, "reports": reports}
                )
        return groups


@lru_cache
def get_report_catalog() -> ReportCatalog:
    """Build the process-wide catalog once."""
    # Lazy import to avoid circular dependency
    from app.config.report_definitions import REPORT_CATEGORIES, REPORT_DEFINITIONS

    return ReportCatalog(REPORT_DEFINITIONS, REPORT_CATEGORIES)
