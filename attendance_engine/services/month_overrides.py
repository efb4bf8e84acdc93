from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.errors import NotFoundError
from attendance_engine.models import AttendanceDay, AttendanceDayStatus, MonthOverride
from attendance_engine.schemas import MonthOverrideUpsertRequest, MonthSummaryRead
from attendance_engine.services.attendance_days import ensure_employee
from attendance_engine.timeutils import month_bounds, validate_month

logger = logging.getLogger("attendance_engine.overrides")

OVERRIDE_FIELDS = ("present_days", "absent_days", "paid_leave_days", "ot_minutes")


@dataclass(frozen=True, slots=True)
class ComputedTotals:
    present_days: float = 0.0
    absent_days: float = 0.0
    paid_leave_days: float = 0.0
    ot_minutes: int = 0
    leave_unpaid_days: float = 0.0
    holiday_days: float = 0.0
    weekly_off_days: float = 0.0
    unmarked_days: float = 0.0
    # Day rows in the month for this employee; the base for loss-of-pay days.
    day_count: int = 0


def compute_totals(rows: Iterable[AttendanceDay]) -> ComputedTotals:
    """Aggregate one employee-month of day rows.

    Leave rows only count towards paid leave when their leave type is paid;
    a leave row without a leave type is unpaid.
    """
    counts: dict[str, float] = dict.fromkeys(
        ("present", "absent", "paid_leave", "unpaid_leave", "holiday", "weekly_off", "unmarked"), 0.0
    )
    ot_minutes = 0
    day_count = 0
    for row in rows:
        day_count += 1
        fraction = float(row.day_fraction or 0)
        if row.status == AttendanceDayStatus.PRESENT:
            counts["present"] += fraction
        elif row.status == AttendanceDayStatus.ABSENT:
            counts["absent"] += 1
        elif row.status == AttendanceDayStatus.LEAVE:
            paid = row.leave_type is not None and row.leave_type.is_paid
            counts["paid_leave" if paid else "unpaid_leave"] += fraction
        elif row.status == AttendanceDayStatus.HOLIDAY:
            counts["holiday"] += 1
        elif row.status == AttendanceDayStatus.WEEKLY_OFF:
            counts["weekly_off"] += 1
        else:
            counts["unmarked"] += 1
        ot_minutes += int(row.ot_minutes or 0)
    return ComputedTotals(
        present_days=counts["present"],
        absent_days=counts["absent"],
        paid_leave_days=counts["paid_leave"],
        ot_minutes=ot_minutes,
        leave_unpaid_days=counts["unpaid_leave"],
        holiday_days=counts["holiday"],
        weekly_off_days=counts["weekly_off"],
        unmarked_days=counts["unmarked"],
        day_count=day_count,
    )


def payable_days(*, present_days: float, paid_leave_days: float, totals: ComputedTotals) -> float:
    """Present plus paid leave plus the paid non-working days (holidays, weekly offs)."""
    return present_days + paid_leave_days + totals.holiday_days + totals.weekly_off_days


def loss_of_pay_days(payable: float, totals: ComputedTotals) -> float:
    return max(0.0, totals.day_count - payable)


def is_override_active(override: MonthOverride | None) -> bool:
    if override is None or not override.use_override:
        return False
    return any(getattr(override, name) is not None for name in OVERRIDE_FIELDS)


def build_month_summary(
    *,
    employee_id: int,
    year: int,
    month: int,
    computed: ComputedTotals,
    override: MonthOverride | None,
) -> MonthSummaryRead:
    use_override = bool(override is not None and override.use_override)
    effective: dict[str, float | int] = {}
    for name in OVERRIDE_FIELDS:
        computed_value = getattr(computed, name)
        override_value = getattr(override, name) if override is not None else None
        # Each measure falls back on its own.
        effective[name] = override_value if use_override and override_value is not None else computed_value

    effective_present = float(effective["present_days"])
    effective_paid_leave = float(effective["paid_leave_days"])
    payable_suggested = payable_days(
        present_days=computed.present_days,
        paid_leave_days=computed.paid_leave_days,
        totals=computed,
    )
    payable_effective = payable_days(
        present_days=effective_present,
        paid_leave_days=effective_paid_leave,
        totals=computed,
    )

    return MonthSummaryRead(
        employee_id=employee_id,
        year=year,
        month=month,
        computed_present_days=computed.present_days,
        computed_absent_days=computed.absent_days,
        computed_paid_leave_days=computed.paid_leave_days,
        computed_ot_minutes=computed.ot_minutes,
        override_present_days=override.present_days if override is not None else None,
        override_absent_days=override.absent_days if override is not None else None,
        override_paid_leave_days=override.paid_leave_days if override is not None else None,
        override_ot_minutes=override.ot_minutes if override is not None else None,
        effective_present_days=effective_present,
        effective_absent_days=float(effective["absent_days"]),
        effective_paid_leave_days=effective_paid_leave,
        effective_ot_minutes=int(effective["ot_minutes"]),
        leave_unpaid_days=computed.leave_unpaid_days,
        holiday_days=computed.holiday_days,
        weekly_off_days=computed.weekly_off_days,
        unmarked_days=computed.unmarked_days,
        payable_days_suggested=payable_suggested,
        lop_days_suggested=loss_of_pay_days(payable_suggested, computed),
        payable_days_effective=payable_effective,
        lop_days_effective=loss_of_pay_days(payable_effective, computed),
        use_override=use_override,
        override_notes=override.notes if override is not None else None,
        attendance_overridden=is_override_active(override),
    )


def get_override(db: Session, *, employee_id: int, year: int, month: int) -> MonthOverride | None:
    return db.scalar(
        select(MonthOverride).where(
            MonthOverride.employee_id == employee_id,
            MonthOverride.year == year,
            MonthOverride.month == month,
        )
    )


def upsert_override(
    db: Session,
    *,
    employee_id: int,
    payload: MonthOverrideUpsertRequest,
    updated_by: str,
) -> MonthOverride:
    """Create or replace the employee's month override.

    Not gated by the attendance period: an override is a payroll-side
    correction layered on the attendance baseline, so it is accepted for
    frozen months as well.
    """
    validate_month(payload.year, payload.month)
    ensure_employee(db, employee_id)

    override = db.scalar(
        select(MonthOverride)
        .where(
            MonthOverride.employee_id == employee_id,
            MonthOverride.year == payload.year,
            MonthOverride.month == payload.month,
        )
        .with_for_update()
    )
    if override is None:
        override = MonthOverride(employee_id=employee_id, year=payload.year, month=payload.month)
        db.add(override)

    override.present_days = payload.present_days
    override.absent_days = payload.absent_days
    override.paid_leave_days = payload.paid_leave_days
    override.ot_minutes = payload.ot_minutes
    override.use_override = payload.use_override
    override.notes = payload.notes
    override.updated_by = updated_by

    db.commit()
    db.refresh(override)
    logger.info(
        "month_override_upsert",
        extra={
            "employee_id": employee_id,
            "year": payload.year,
            "month": payload.month,
            "use_override": override.use_override,
            "updated_by": updated_by,
        },
    )
    return override


def clear_override(db: Session, *, employee_id: int, year: int, month: int, cleared_by: str) -> None:
    validate_month(year, month)
    override = get_override(db, employee_id=employee_id, year=year, month=month)
    if override is None:
        raise NotFoundError("Month override not found.")
    db.delete(override)
    db.commit()
    logger.info(
        "month_override_cleared",
        extra={"employee_id": employee_id, "year": year, "month": month, "cleared_by": cleared_by},
    )


def list_month_rows(
    db: Session,
    *,
    year: int,
    month: int,
    employee_ids: Iterable[int] | None = None,
    company_id: int | None = None,
) -> list[AttendanceDay]:
    start_date, end_date = month_bounds(year, month)
    stmt = (
        select(AttendanceDay)
        .options(selectinload(AttendanceDay.leave_type))
        .where(
            AttendanceDay.day_date >= start_date,
            AttendanceDay.day_date <= end_date,
        )
        .order_by(AttendanceDay.employee_id.asc(), AttendanceDay.day_date.asc())
    )
    if employee_ids is not None:
        stmt = stmt.where(AttendanceDay.employee_id.in_(list(employee_ids)))
    if company_id is not None:
        stmt = stmt.where(AttendanceDay.company_id == company_id)
    return list(db.scalars(stmt).all())


def resolve_effective(db: Session, *, employee_id: int, year: int, month: int) -> MonthSummaryRead:
    validate_month(year, month)
    ensure_employee(db, employee_id)
    rows = list_month_rows(db, year=year, month=month, employee_ids=[employee_id])
    return build_month_summary(
        employee_id=employee_id,
        year=year,
        month=month,
        computed=compute_totals(rows),
        override=get_override(db, employee_id=employee_id, year=year, month=month),
    )
