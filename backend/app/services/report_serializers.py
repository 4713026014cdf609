"""Format serializers: (title, columns, rows, format) -> bytes.

Pure functions; the worker treats any exception or an empty buffer as a
permanent failure of the run.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, timezone
from typing import Any, Mapping, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

from app.services.report_catalog import ReportColumn


FORMAT_EXTENSIONS: Mapping[str, str] = {
    "excel": "xlsx",
    "csv": "csv",
    "pdf": "pdf",
    "json": "json",
}

CONTENT_TYPES: Mapping[str, str] = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
    "pdf": "application/pdf",
    "json": "application/json",
}


def _json_default(obj):
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            return obj.replace(tzinfo=timezone.utc).isoformat()
        return obj.astimezone(timezone.utc).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    return str(obj)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=_json_default)
    return str(value)


def _excel_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        # Excel has no timezone support.
        return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return value
    return _text(value)


def to_csv(title: str, columns: Sequence[ReportColumn], rows: Sequence[Mapping[str, Any]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([c.label for c in columns])
    for row in rows:
        writer.writerow([_text(row.get(c.id)) for c in columns])
    return output.getvalue().encode("utf-8")


def to_json(title: str, columns: Sequence[ReportColumn], rows: Sequence[Mapping[str, Any]]) -> bytes:
    payload = {
        "title": title,
        "columns": [{"id": c.id, "label": c.label, "type": c.type} for c in columns],
        "rows": [{c.id: row.get(c.id) for c in columns} for row in rows],
        "rowCount": len(rows),
    }
    return json.dumps(payload, indent=2, default=_json_default).encode("utf-8")


def to_excel(title: str, columns: Sequence[ReportColumn], rows: Sequence[Mapping[str, Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    # Sheet titles are capped at 31 characters and may not contain []:*?/\
    ws.title = "".join(ch for ch in title if ch not in "[]:*?/\\")[:31] or "Report"

    ws.append([c.label for c in columns])
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="4F81BD")
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill

    for row in rows:
        ws.append([_excel_value(row.get(c.id)) for c in columns])

    for idx, column in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = column.width
    ws.freeze_panes = "A2"

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def to_pdf(title: str, columns: Sequence[ReportColumn], rows: Sequence[Mapping[str, Any]]) -> bytes:
    output = io.BytesIO()
    doc = SimpleDocTemplate(output, pagesize=landscape(letter), title=title)
    styles = getSampleStyleSheet()
    elements = [Paragraph(title, styles["Title"])]

    table_data = [[c.label for c in columns]]
    for row in rows:
        table_data.append([_text(row.get(c.id)) for c in columns])

    table = Table(table_data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 1), (-1, -1), 7),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
    ]))
    elements.append(table)

    doc.build(elements)
    return output.getvalue()


_SERIALIZERS = {
    "excel": to_excel,
    "csv": to_csv,
    "pdf": to_pdf,
    "json": to_json,
}


def serialize(
    title: str,
    columns: Sequence[ReportColumn],
    rows: Sequence[Mapping[str, Any]],
    format: str,
) -> bytes:
    serializer = _SERIALIZERS.get(format)
    if serializer is None:
        raise ValueError(f"Unsupported export format: {format}")
    return serializer(title, columns, rows)
