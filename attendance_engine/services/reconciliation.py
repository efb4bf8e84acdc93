from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendance_engine.models import AttendanceDay, AttendancePeriodStatus, Employee, MonthOverride
from attendance_engine.schemas import ReconciliationRead, ReconciliationRowRead
from attendance_engine.services.month_overrides import build_month_summary, compute_totals, list_month_rows
from attendance_engine.services.periods import ensure_company, find_period, period_status
from attendance_engine.timeutils import month_bounds


def _month_employees(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_ids: Iterable[int] | None,
) -> list[Employee]:
    start_date, end_date = month_bounds(year, month)
    with_rows = select(AttendanceDay.employee_id).where(
        AttendanceDay.company_id == company_id,
        AttendanceDay.day_date >= start_date,
        AttendanceDay.day_date <= end_date,
    )
    with_override = select(MonthOverride.employee_id).where(
        MonthOverride.year == year,
        MonthOverride.month == month,
    )
    stmt = (
        select(Employee)
        .where(
            Employee.company_id == company_id,
            Employee.is_active.is_(True)
            | Employee.id.in_(with_rows)
            | Employee.id.in_(with_override),
        )
        .order_by(Employee.full_name.asc(), Employee.id.asc())
    )
    if employee_ids is not None:
        stmt = stmt.where(Employee.id.in_(list(employee_ids)))
    return list(db.scalars(stmt).all())


def build_reconciliation(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_ids: Iterable[int] | None = None,
) -> ReconciliationRead:
    """Assemble the read-only payroll view of one company-month.

    Each row carries the computed, override and effective measures plus
    provenance flags. ``attendance_unfrozen_warning`` is set on every row
    while the period is not frozen.
    """
    ensure_company(db, company_id)
    period = find_period(db, company_id=company_id, year=year, month=month)
    status = period_status(period)
    unfrozen = status != AttendancePeriodStatus.FROZEN

    employees = _month_employees(
        db,
        company_id=company_id,
        year=year,
        month=month,
        employee_ids=employee_ids,
    )
    ids = [employee.id for employee in employees]

    rows_by_employee: dict[int, list[AttendanceDay]] = defaultdict(list)
    overrides: dict[int, MonthOverride] = {}
    if ids:
        for row in list_month_rows(db, year=year, month=month, employee_ids=ids, company_id=company_id):
            rows_by_employee[row.employee_id].append(row)
        for override in db.scalars(
            select(MonthOverride).where(
                MonthOverride.employee_id.in_(ids),
                MonthOverride.year == year,
                MonthOverride.month == month,
            )
        ).all():
            overrides[override.employee_id] = override

    items: list[ReconciliationRowRead] = []
    for employee in employees:
        summary = build_month_summary(
            employee_id=employee.id,
            year=year,
            month=month,
            computed=compute_totals(rows_by_employee.get(employee.id, [])),
            override=overrides.get(employee.id),
        )
        items.append(
            ReconciliationRowRead(
                **summary.model_dump(),
                employee_code=employee.employee_code,
                full_name=employee.full_name,
                period_status=status,
                attendance_unfrozen_warning=unfrozen,
            )
        )

    return ReconciliationRead(
        company_id=company_id,
        year=year,
        month=month,
        period_status=status,
        frozen_at=period.frozen_at if period is not None else None,
        rows=items,
    )
