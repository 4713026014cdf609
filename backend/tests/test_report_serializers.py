from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, timezone

import pytest
from openpyxl import load_workbook

from app.services.report_catalog import ReportColumn
from app.services.report_serializers import FORMAT_EXTENSIONS, serialize


COLUMNS = (
    ReportColumn("name", "Student Name"),
    ReportColumn("count", "Internships", "number"),
    ReportColumn("active", "Active", "boolean"),
    ReportColumn("joined", "Joined", "date"),
)

ROWS = [
    {"name": "Asha", "count": 2, "active": True, "joined": date(2025, 7, 1), "ignored": "x"},
    {"name": "Ravi", "count": 0, "active": False, "joined": None},
]


def test_csv_has_header_labels_and_text_values():
    data = serialize("Student Progress Report", COLUMNS, ROWS, "csv")

    rows = list(csv.reader(io.StringIO(data.decode("utf-8"))))
    assert rows[0] == ["Student Name", "Internships", "Active", "Joined"]
    assert rows[1] == ["Asha", "2", "Yes", "2025-07-01"]
    assert rows[2] == ["Ravi", "0", "No", ""]


def test_json_payload_shape():
    generated = datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc)
    rows = [{"name": "Asha", "count": 1, "active": True, "joined": generated}]

    payload = json.loads(serialize("Placements", COLUMNS, rows, "json"))

    assert payload["title"] == "Placements"
    assert payload["rowCount"] == 1
    assert [c["id"] for c in payload["columns"]] == ["name", "count", "active", "joined"]
    assert payload["rows"] == [{"name": "Asha", "count": 1, "active": True, "joined": "2026-01-02T03:04:00+00:00"}]


def test_excel_workbook_contents():
    data = serialize("A Very Long Report Title: With [Bad] Characters", COLUMNS, ROWS, "excel")

    ws = load_workbook(io.BytesIO(data)).active
    assert len(ws.title) <= 31
    assert not any(ch in ws.title for ch in "[]:*?/\\")
    assert [c.value for c in ws[1]] == ["Student Name", "Internships", "Active", "Joined"]
    assert ws["A2"].value == "Asha"
    assert ws["B2"].value == 2
    assert ws["C3"].value is False
    assert ws.max_row == 3


def test_pdf_is_rendered():
    data = serialize("Placement Report", COLUMNS, ROWS, "pdf")
    assert data.startswith(b"%PDF")


def test_unknown_format_raises():
    with pytest.raises(ValueError):
        serialize("x", COLUMNS, ROWS, "docx")


def test_every_format_has_an_extension():
    assert set(FORMAT_EXTENSIONS) == {"excel", "csv", "pdf", "json"}
