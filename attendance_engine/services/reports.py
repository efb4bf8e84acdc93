from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.models import AttendanceDay, AttendanceDayStatus, Employee
from attendance_engine.schemas import (
    AttendanceExceptionRead,
    AttendanceRegisterRead,
    RegisterCellRead,
    RegisterRowRead,
)
from attendance_engine.services.periods import ensure_company, find_period, period_status
from attendance_engine.timeutils import attendance_timezone, iter_month_days, month_bounds

_STATUS_CODES: dict[AttendanceDayStatus, str] = {
    AttendanceDayStatus.PRESENT: "P",
    AttendanceDayStatus.ABSENT: "A",
    AttendanceDayStatus.LEAVE: "L",
    AttendanceDayStatus.HOLIDAY: "H",
    AttendanceDayStatus.WEEKLY_OFF: "WO",
    AttendanceDayStatus.UNMARKED: "-",
}


def register_code(row: AttendanceDay | None) -> str:
    if row is None:
        return ""
    if row.status == AttendanceDayStatus.PRESENT and row.day_fraction == 0.5:
        return "HD"
    return _STATUS_CODES[row.status]


def _company_rows(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_id: int | None = None,
) -> tuple[list[Employee], dict[int, list[AttendanceDay]]]:
    start_date, end_date = month_bounds(year, month)
    stmt = (
        select(AttendanceDay)
        .options(selectinload(AttendanceDay.employee))
        .where(
            AttendanceDay.company_id == company_id,
            AttendanceDay.day_date >= start_date,
            AttendanceDay.day_date <= end_date,
        )
        .order_by(AttendanceDay.employee_id.asc(), AttendanceDay.day_date.asc())
    )
    if employee_id is not None:
        stmt = stmt.where(AttendanceDay.employee_id == employee_id)

    rows_by_employee: dict[int, list[AttendanceDay]] = defaultdict(list)
    employees: dict[int, Employee] = {}
    for row in db.scalars(stmt).all():
        rows_by_employee[row.employee_id].append(row)
        employees[row.employee_id] = row.employee
    ordered = sorted(employees.values(), key=lambda item: (item.full_name, item.id))
    return ordered, rows_by_employee


def build_attendance_register(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_id: int | None = None,
) -> AttendanceRegisterRead:
    ensure_company(db, company_id)
    days = iter_month_days(year, month)
    employees, rows_by_employee = _company_rows(
        db,
        company_id=company_id,
        year=year,
        month=month,
        employee_id=employee_id,
    )

    register_rows: list[RegisterRowRead] = []
    for employee in employees:
        by_day = {row.day_date: row for row in rows_by_employee[employee.id]}
        cells: list[RegisterCellRead] = []
        totals: dict[AttendanceDayStatus, float] = defaultdict(float)
        for day_date in days:
            row = by_day.get(day_date)
            cells.append(
                RegisterCellRead(
                    day_date=day_date,
                    status=row.status if row is not None else None,
                    code=register_code(row),
                )
            )
            if row is None:
                continue
            if row.status in (AttendanceDayStatus.PRESENT, AttendanceDayStatus.LEAVE):
                totals[row.status] += float(row.day_fraction or 0)
            else:
                totals[row.status] += 1

        register_rows.append(
            RegisterRowRead(
                employee_id=employee.id,
                employee_code=employee.employee_code,
                full_name=employee.full_name,
                days=cells,
                present_days=totals[AttendanceDayStatus.PRESENT],
                absent_days=int(totals[AttendanceDayStatus.ABSENT]),
                leave_days=totals[AttendanceDayStatus.LEAVE],
                holiday_days=int(totals[AttendanceDayStatus.HOLIDAY]),
                weekly_off_days=int(totals[AttendanceDayStatus.WEEKLY_OFF]),
                unmarked_days=int(totals[AttendanceDayStatus.UNMARKED]),
            )
        )

    period = find_period(db, company_id=company_id, year=year, month=month)
    return AttendanceRegisterRead(
        company_id=company_id,
        year=year,
        month=month,
        period_status=period_status(period),
        rows=register_rows,
    )


def _row_issues(row: AttendanceDay, *, as_of: date) -> list[tuple[str, str | None]]:
    issues: list[tuple[str, str | None]] = []
    if row.status == AttendanceDayStatus.UNMARKED:
        if row.day_date <= as_of:
            issues.append(("UNMARKED_DAY", None))
        return issues

    if row.check_in_at is None and row.check_out_at is not None:
        issues.append(("MISSING_CHECK_IN", None))
    if row.check_in_at is not None and row.check_out_at is None:
        issues.append(("MISSING_CHECK_OUT", None))

    if row.status != AttendanceDayStatus.PRESENT:
        return issues

    if row.shift_id is None:
        issues.append(("PRESENT_WITHOUT_SHIFT", None))
    if row.late_minutes:
        issues.append(("LATE_ARRIVAL", f"{row.late_minutes} min"))
    if row.early_leave_minutes:
        issues.append(("EARLY_LEAVE", f"{row.early_leave_minutes} min"))
    if row.work_minutes is not None and row.shift_id is not None and row.day_fraction == 0:
        issues.append(("BELOW_HALF_DAY", f"{row.work_minutes} min worked"))
    return issues


def build_attendance_exceptions(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_id: int | None = None,
    issue_key: str | None = None,
    as_of: date | None = None,
) -> list[AttendanceExceptionRead]:
    """List day-level problems worth a look before the month is frozen.

    Unmarked days are only reported up to ``as_of`` (today in the attendance
    timezone by default), so future days of the running month stay quiet.
    """
    ensure_company(db, company_id)
    if as_of is None:
        as_of = datetime.now(attendance_timezone()).date()
    employees, rows_by_employee = _company_rows(
        db,
        company_id=company_id,
        year=year,
        month=month,
        employee_id=employee_id,
    )

    items: list[AttendanceExceptionRead] = []
    for employee in employees:
        for row in rows_by_employee[employee.id]:
            for key, detail in _row_issues(row, as_of=as_of):
                if issue_key is not None and key != issue_key:
                    continue
                items.append(
                    AttendanceExceptionRead(
                        employee_id=employee.id,
                        employee_code=employee.employee_code,
                        full_name=employee.full_name,
                        day_date=row.day_date,
                        status=row.status,
                        issue_key=key,
                        detail=detail,
                    )
                )
    items.sort(key=lambda item: (item.day_date, item.full_name, item.employee_id, item.issue_key))
    return items
