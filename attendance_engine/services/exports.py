from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Callable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy.orm import Session

from attendance_engine.models import AttendancePeriodStatus
from attendance_engine.schemas import AttendanceRegisterRead, ReconciliationRead, ReconciliationRowRead
from attendance_engine.services.reconciliation import build_reconciliation
from attendance_engine.services.reports import build_attendance_register

UNFROZEN_WARNING_TEXT = "Attendance not frozen; figures may change."


def _solid(color: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=color)


HEADER_FILL = _solid("1F4E3D")
LABEL_FILL = _solid("E8F1EC")
WARNING_FILL = _solid("FFF3CD")
STRIPE_FILL = _solid("F5F9F7")

# Register cells are tinted by day code so gaps stand out when printed.
REGISTER_CODE_FILLS: dict[str, PatternFill] = {
    "A": _solid("F8D7DA"),
    "L": _solid("DCEBFA"),
    "H": _solid("E2E3F3"),
    "WO": _solid("ECECEC"),
    "-": WARNING_FILL,
}

HEADER_FONT = Font(bold=True, color="FFFFFF")
TITLE_FONT = Font(bold=True, size=14, color="1F4E3D")
LABEL_FONT = Font(bold=True)
WARNING_FONT = Font(bold=True, color="9A3412")
OVERRIDE_FONT = Font(bold=True)

_EDGE = Side(style="thin", color="CCD6D0")
GRID = Border(left=_EDGE, right=_EDGE, top=_EDGE, bottom=_EDGE)
CENTER = Alignment(horizontal="center", vertical="center")

_Getter = Callable[[ReconciliationRowRead], Any]

# (header, value getter, highlighted when the row is overridden)
RECONCILIATION_COLUMNS: list[tuple[str, _Getter, bool]] = [
    ("Employee ID", lambda row: row.employee_id, False),
    ("Employee Code", lambda row: row.employee_code or "", False),
    ("Employee", lambda row: row.full_name, False),
    ("Computed Present", lambda row: row.computed_present_days, False),
    ("Computed Absent", lambda row: row.computed_absent_days, False),
    ("Computed Paid Leave", lambda row: row.computed_paid_leave_days, False),
    ("Computed OT (min)", lambda row: row.computed_ot_minutes, False),
    ("Override Present", lambda row: row.override_present_days, False),
    ("Override Absent", lambda row: row.override_absent_days, False),
    ("Override Paid Leave", lambda row: row.override_paid_leave_days, False),
    ("Override OT (min)", lambda row: row.override_ot_minutes, False),
    ("Effective Present", lambda row: row.effective_present_days, True),
    ("Effective Absent", lambda row: row.effective_absent_days, True),
    ("Effective Paid Leave", lambda row: row.effective_paid_leave_days, True),
    ("Effective OT (min)", lambda row: row.effective_ot_minutes, True),
    ("Overridden", lambda row: "Yes" if row.attendance_overridden else "No", False),
    ("Unpaid Leave", lambda row: row.leave_unpaid_days, False),
    ("Holidays", lambda row: row.holiday_days, False),
    ("Weekly Offs", lambda row: row.weekly_off_days, False),
    ("Unmarked", lambda row: row.unmarked_days, False),
    ("Suggested Payable Days", lambda row: row.payable_days_suggested, False),
    ("Suggested LOP Days", lambda row: row.lop_days_suggested, False),
    ("Final Payable Days", lambda row: row.payable_days_effective, True),
    ("Final LOP Days", lambda row: row.lop_days_effective, True),
    ("Override Notes", lambda row: row.override_notes or "", False),
]

REGISTER_TOTAL_HEADERS = ["Present", "Absent", "Leave", "Holiday", "Weekly Off", "Unmarked"]


def _naive_utc(value: datetime | None) -> datetime | None:
    # openpyxl cannot store aware datetimes.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _write_header(ws: Worksheet, row: int, titles: list[str]) -> None:
    for column, title in enumerate(titles, start=1):
        cell = ws.cell(row=row, column=column, value=title)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = GRID
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _fit_columns(ws: Worksheet, *, first_row: int = 1, cap: int = 40) -> None:
    for column in range(1, ws.max_column + 1):
        lengths = [
            len(str(value))
            for (value,) in ws.iter_rows(min_row=first_row, min_col=column, max_col=column, values_only=True)
            if value is not None
        ]
        ws.column_dimensions[get_column_letter(column)].width = min(max(lengths, default=0) + 2, cap)


def _write_reconciliation_sheet(ws: Worksheet, report: ReconciliationRead) -> None:
    width = len(RECONCILIATION_COLUMNS)
    ws.title = "Reconciliation"
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=width)
    title_cell = ws.cell(row=1, column=1, value=f"Attendance Reconciliation {report.year}-{report.month:02d}")
    title_cell.font = TITLE_FONT

    facts: list[tuple[str, Any]] = [
        ("Company ID", report.company_id),
        ("Period Status", report.period_status.value),
        ("Frozen At (UTC)", _naive_utc(report.frozen_at)),
        ("Employees", len(report.rows)),
    ]
    for label, value in facts:
        ws.append([label, value])
        ws.cell(row=ws.max_row, column=1).font = LABEL_FONT
        ws.cell(row=ws.max_row, column=1).fill = LABEL_FILL
    if report.period_status != AttendancePeriodStatus.FROZEN:
        ws.append(["Warning", UNFROZEN_WARNING_TEXT])
        for cell in ws[ws.max_row][:2]:
            cell.font = WARNING_FONT
            cell.fill = WARNING_FILL

    header_row = ws.max_row + 2
    _write_header(ws, header_row, [header for header, _, _ in RECONCILIATION_COLUMNS])

    for offset, item in enumerate(report.rows, start=1):
        row = header_row + offset
        for column, (_, getter, highlight) in enumerate(RECONCILIATION_COLUMNS, start=1):
            cell = ws.cell(row=row, column=column, value=getter(item))
            cell.border = GRID
            if isinstance(cell.value, (int, float)):
                cell.alignment = CENTER
            if highlight and item.attendance_overridden:
                cell.fill = WARNING_FILL
                cell.font = OVERRIDE_FONT
            elif offset % 2 == 0:
                cell.fill = STRIPE_FILL

    if report.rows:
        ws.auto_filter.ref = f"A{header_row}:{get_column_letter(width)}{ws.max_row}"
    ws.freeze_panes = ws.cell(row=header_row + 1, column=4)
    _fit_columns(ws, first_row=2)


def _write_register_sheet(ws: Worksheet, register: AttendanceRegisterRead) -> None:
    day_count = max((len(item.days) for item in register.rows), default=0)
    _write_header(
        ws,
        1,
        ["Employee Code", "Employee", *(str(day) for day in range(1, day_count + 1)), *REGISTER_TOTAL_HEADERS],
    )

    for item in register.rows:
        ws.append(
            [
                item.employee_code or "",
                item.full_name,
                *(day.code for day in item.days),
                item.present_days,
                item.absent_days,
                item.leave_days,
                item.holiday_days,
                item.weekly_off_days,
                item.unmarked_days,
            ]
        )
        for cell in ws[ws.max_row][2:]:
            cell.alignment = CENTER
            cell.border = GRID
            fill = REGISTER_CODE_FILLS.get(str(cell.value))
            if fill is not None:
                cell.fill = fill
    ws.freeze_panes = "C2"
    _fit_columns(ws)
    for column in range(3, 3 + day_count):
        ws.column_dimensions[get_column_letter(column)].width = 4


def build_reconciliation_xlsx_bytes(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    include_register: bool = True,
) -> bytes:
    """Payroll workbook: reconciliation sheet plus, optionally, the month register."""
    workbook = Workbook()
    _write_reconciliation_sheet(
        workbook.active,
        build_reconciliation(db, company_id=company_id, year=year, month=month),
    )
    if include_register:
        _write_register_sheet(
            workbook.create_sheet("Register"),
            build_attendance_register(db, company_id=company_id, year=year, month=month),
        )

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
