from __future__ import annotations

from datetime import date

import pytest

from app.services.report_catalog import (
    CANONICAL_ROLES,
    DEFAULT_ALLOW_ROLES,
    FACULTY,
    STATE_DIRECTORATE,
    SYSTEM_ADMIN,
    DefinedLayout,
    ReportCatalog,
    ReportCategory,
    ReportColumn,
    ReportDefinition,
    humanize_field,
    normalize_roles,
    resolve_layout,
)
from app.services.report_errors import ReportNotFoundError


def _visible_types(catalog: ReportCatalog, role: str | None) -> set[str]:
    return {d.type for d in catalog.visible_to(role)}


def test_catalog_has_twelve_unique_report_types(catalog):
    assert len(catalog) == 12
    assert len({d.type for d in catalog.definitions}) == 12


def test_faculty_alias_role_sees_faculty_catalog_only(catalog):
    assert normalize_roles("teacher") == (FACULTY,)

    types = _visible_types(catalog, "teacher")
    assert "student-progress" in types
    assert "institution-performance" not in types
    assert "mentor-list" not in types
    assert "placement" not in types


def test_role_normalisation_rules():
    assert normalize_roles(None) == CANONICAL_ROLES
    assert normalize_roles("  ") == CANONICAL_ROLES
    assert normalize_roles("principal") == ("PRINCIPAL",)
    assert normalize_roles("Faculty") == (FACULTY,)
    assert normalize_roles("STATE_DIRECTORATE") == (STATE_DIRECTORATE,)
    assert normalize_roles("regional_state_officer") == (STATE_DIRECTORATE, SYSTEM_ADMIN)
    assert normalize_roles("tenant-admin") == (STATE_DIRECTORATE, SYSTEM_ADMIN)


def test_unknown_role_falls_back_to_default_allow(catalog):
    assert normalize_roles("janitor") == DEFAULT_ALLOW_ROLES
    # Default-allow grants the broadest catalog.
    assert "institution-performance" in _visible_types(catalog, "janitor")


def test_list_catalog_groups_by_category_and_skips_empty_groups(catalog):
    groups = catalog.list_catalog("student")
    keys = [g["key"] for g in groups]

    assert keys  # students see at least the status reports
    for group in groups:
        assert group["reports"], group["key"]
        for report in group["reports"]:
            assert report["category"] == group["key"]
            assert report["columns_count"] > 0

    assert "institute" not in keys


def test_get_definition_unknown_type(catalog):
    with pytest.raises(ReportNotFoundError):
        catalog.get_definition("does-not-exist")


def test_monthly_report_status_requires_month_and_year(catalog):
    definition = catalog.get_definition("monthly-report-status")
    required = {f.id for f in definition.filters if f.required}
    assert required == {"month", "year"}


def test_duplicate_types_are_rejected():
    definition = ReportDefinition(
        type="dup",
        name="Dup",
        description="",
        category="student",
        icon="x",
        available_for=frozenset({FACULTY}),
        columns=(),
    )
    with pytest.raises(ValueError):
        ReportCatalog([definition, definition], [ReportCategory("student", "Students", "team")])


def test_humanize_field():
    assert humanize_field("rollNumber") == "Roll Number"
    assert humanize_field("student_name") == "Student Name"
    assert humanize_field("id") == "Id"


def test_synthesized_layout_uses_first_row(catalog):
    definition = catalog.get_definition("pending-monthly-reports")
    rows = [{"studentName": "A", "pendingCount": 3, "dueDate": "2026-01-31", "overdue": True}]

    columns = resolve_layout(definition, rows)

    assert [c.id for c in columns] == ["studentName", "pendingCount", "dueDate", "overdue"]
    assert [c.label for c in columns] == ["Student Name", "Pending Count", "Due Date", "Overdue"]
    assert [c.type for c in columns] == ["string", "number", "date", "boolean"]


def test_synthesized_layout_detects_date_objects(catalog):
    definition = catalog.get_definition("pending-joining-letters")
    columns = resolve_layout(definition, [{"joinedOn": date(2026, 1, 1)}])
    assert columns[0].type == "date"


def test_defined_layout_narrowed_to_selected_columns(catalog):
    definition = catalog.get_definition("student-progress")
    assert isinstance(definition.layout, DefinedLayout)

    narrowed = resolve_layout(definition, [], ["name", "rollNumber", "unknown"])
    assert [c.id for c in narrowed] == ["name", "rollNumber"]

    # Nothing matches -> full layout
    full = resolve_layout(definition, [], ["unknown"])
    assert full == definition.layout.columns


def test_title_appends_report_suffix_once():
    base = dict(description="", category="student", icon="x", available_for=frozenset(), columns=(ReportColumn("a", "A"),))
    assert ReportDefinition(type="a", name="Student Progress", **base).title == "Student Progress Report"
    assert ReportDefinition(type="b", name="Placement Report", **base).title == "Placement Report"
