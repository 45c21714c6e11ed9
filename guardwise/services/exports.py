from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from guardwise.schemas import LocationSummaryRead, PatrolHistory
from guardwise.services.patrol_outcomes import summarize_outcomes

REPORT_TITLE = "Location-wise Patrol Report"
SUMMARY_HEADERS = ["Zone", "Checkpoint", "Total", "Completed", "Late", "Missed", "Skipped"]
VISIT_HEADERS = [
    "Date",
    "Guard",
    "Zone",
    "Checkpoint",
    "Status",
    "Scan Method",
    "Grace (min)",
    "Late By (min)",
    "Skip Reason",
]
MAX_COLUMN_WIDTH = 40

HEADER_FILL = PatternFill(fill_type="solid", fgColor="1E3A5F")
LABEL_FILL = PatternFill(fill_type="solid", fgColor="E8EEF5")
STRIPE_FILL = PatternFill(fill_type="solid", fgColor="F5F8FB")
STATUS_FILLS = {
    "completed": PatternFill(fill_type="solid", fgColor="DCFCE7"),
    "late": PatternFill(fill_type="solid", fgColor="FEF3C7"),
    "missed": PatternFill(fill_type="solid", fgColor="FEE2E2"),
    "skipped": PatternFill(fill_type="solid", fgColor="E5E7EB"),
}

HEADER_FONT = Font(bold=True, color="FFFFFF")
STRONG_FONT = Font(bold=True, color="111827")
TITLE_FONT = Font(bold=True, color="1E3A5F", size=14)

EDGE = Side(style="thin", color="CBD5E1")
CELL_BORDER = Border(left=EDGE, right=EDGE, top=EDGE, bottom=EDGE)
CENTER = Alignment(horizontal="center", vertical="center")
LEFT = Alignment(horizontal="left", vertical="center")


def _write_table(
    ws: Worksheet,
    header_row: int,
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    *,
    status_column: str | None = None,
) -> int:
    """Write a bordered, filterable table and return its last row."""
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=header_row, column=col_idx, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = CELL_BORDER

    status_idx = headers.index(status_column) + 1 if status_column else None
    last_row = header_row
    for offset, values in enumerate(rows, start=1):
        last_row = header_row + offset
        for col_idx, value in enumerate(values, start=1):
            cell = ws.cell(row=last_row, column=col_idx, value=value)
            cell.border = CELL_BORDER
            cell.alignment = CENTER if isinstance(value, (int, float)) else LEFT
            if offset % 2 == 0:
                cell.fill = STRIPE_FILL
        if status_idx is not None:
            status_cell = ws.cell(row=last_row, column=status_idx)
            fill = STATUS_FILLS.get(str(status_cell.value))
            if fill is not None:
                status_cell.fill = fill
                status_cell.font = STRONG_FONT

    ws.freeze_panes = f"A{header_row + 1}"
    if last_row > header_row:
        ws.auto_filter.ref = f"A{header_row}:{get_column_letter(len(headers))}{last_row}"
    return last_row


def _fit_columns(ws: Worksheet) -> None:
    widths: dict[int, int] = {}
    for row in ws.iter_rows():
        for cell in row:
            if cell.value is None or cell.coordinate in ws.merged_cells:
                continue
            widths[cell.column] = max(widths.get(cell.column, 0), len(str(cell.value)))
    for column, width in widths.items():
        ws.column_dimensions[get_column_letter(column)].width = min(width + 2, MAX_COLUMN_WIDTH)


def _write_summary_sheet(
    ws: Worksheet,
    rows: list[LocationSummaryRead],
    history: list[PatrolHistory],
    *,
    from_date: date | None,
    to_date: date | None,
    generated_at: datetime,
) -> None:
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(SUMMARY_HEADERS))
    title = ws.cell(row=1, column=1, value=REPORT_TITLE)
    title.font = TITLE_FONT
    title.alignment = LEFT

    metadata = [
        ("From", from_date.isoformat() if from_date else "-"),
        ("To", to_date.isoformat() if to_date else "-"),
        ("Generated (UTC)", generated_at.strftime("%Y-%m-%d %H:%M")),
        ("Compliance %", summarize_outcomes(history).compliance),
    ]
    for row_idx, (label, value) in enumerate(metadata, start=3):
        label_cell = ws.cell(row=row_idx, column=1, value=label)
        label_cell.font = STRONG_FONT
        label_cell.fill = LABEL_FILL
        label_cell.border = CELL_BORDER
        ws.cell(row=row_idx, column=2, value=value).border = CELL_BORDER

    header_row = 4 + len(metadata)
    table = [
        [row.zone_name, row.checkpoint_name, row.total, row.completed, row.late, row.missed, row.skipped]
        for row in rows
    ]
    last_row = _write_table(ws, header_row, SUMMARY_HEADERS, table)

    totals = ["Total", None] + [sum(values[col] for values in table) for col in range(2, len(SUMMARY_HEADERS))]
    for col_idx, value in enumerate(totals, start=1):
        cell = ws.cell(row=last_row + 1, column=col_idx, value=value)
        cell.font = STRONG_FONT
        cell.border = CELL_BORDER
        cell.alignment = CENTER if isinstance(value, int) else LEFT


def _visit_row(record: PatrolHistory) -> list[Any]:
    return [
        record.date.isoformat(),
        record.guard_name,
        record.zone_name,
        record.checkpoint_name,
        record.status.value,
        record.scan_method.value,
        record.grace_time_minutes,
        record.late_by_minutes if record.late_by_minutes is not None else "-",
        record.skip_reason.value if record.skip_reason is not None else "-",
    ]


def build_location_wise_xlsx_bytes(
    rows: list[LocationSummaryRead],
    history: list[PatrolHistory],
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    generated_at: datetime | None = None,
) -> bytes:
    wb = Workbook()
    summary_ws = wb.active
    summary_ws.title = "Location Wise"
    _write_summary_sheet(
        summary_ws,
        rows,
        history,
        from_date=from_date,
        to_date=to_date,
        generated_at=generated_at or datetime.now(timezone.utc),
    )
    _fit_columns(summary_ws)

    visits_ws = wb.create_sheet(title="Visits")
    _write_table(visits_ws, 1, VISIT_HEADERS, [_visit_row(item) for item in history], status_column="Status")
    _fit_columns(visits_ws)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
