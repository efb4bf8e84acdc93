from __future__ import annotations

import logging
from datetime import date, timedelta, tzinfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendance_engine.errors import ImmutableSourceError, PeriodLockedError, ValidationFailedError
from attendance_engine.models import (
    IMMUTABLE_STATUS_SOURCES,
    AttendanceDay,
    AttendanceDaySource,
    AttendanceDayStatus,
    Employee,
    LeaveType,
    Shift,
)
from attendance_engine.services.day_metrics import compute_day_metrics, resolve_day_fraction, shift_config_from_model
from attendance_engine.services.periods import ensure_period_open, find_period
from attendance_engine.services.shift_reference import resolve_shift
from attendance_engine.timeutils import attendance_timezone, combine_utc, month_bounds, to_utc

logger = logging.getLogger("attendance_engine.days")

_EXTERNAL_SOURCE_STATUS: dict[AttendanceDaySource, AttendanceDayStatus] = {
    AttendanceDaySource.LEAVE: AttendanceDayStatus.LEAVE,
    AttendanceDaySource.HOLIDAY_CALENDAR: AttendanceDayStatus.HOLIDAY,
}


def ensure_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise ValidationFailedError("Employee not found.")
    return employee


def apply_day_metrics(day: AttendanceDay, shift: Shift | None, *, tz: tzinfo | None = None) -> None:
    """Rewrite the derived columns of ``day`` from its timestamps and ``shift``.

    Status and source are left as they are.
    """
    metrics = compute_day_metrics(
        check_in=to_utc(day.check_in_at),
        check_out=to_utc(day.check_out_at),
        shift=shift_config_from_model(shift),
        day_date=day.day_date,
        tz=tz if tz is not None else attendance_timezone(),
    )
    day.shift = shift
    day.shift_id = shift.id if shift is not None else None
    day.work_minutes = metrics.work_minutes
    day.late_minutes = metrics.late_minutes
    day.early_leave_minutes = metrics.early_leave_minutes
    day.ot_minutes = metrics.ot_minutes
    day.day_fraction = resolve_day_fraction(day.status, metrics)


def _locked_day(db: Session, *, employee_id: int, day_date: date) -> AttendanceDay | None:
    return db.scalar(
        select(AttendanceDay)
        .where(
            AttendanceDay.employee_id == employee_id,
            AttendanceDay.day_date == day_date,
        )
        .with_for_update()
    )


def _open_period_for_day(db: Session, *, employee: Employee, day_date: date) -> None:
    # Shared lock so a concurrent freeze waits for this write to finish.
    period = find_period(
        db,
        company_id=employee.company_id,
        year=day_date.year,
        month=day_date.month,
        lock="share",
    )
    try:
        ensure_period_open(period)
    except PeriodLockedError:
        db.rollback()
        raise


def _new_day(employee: Employee, day_date: date) -> AttendanceDay:
    return AttendanceDay(
        company_id=employee.company_id,
        employee_id=employee.id,
        day_date=day_date,
        status=AttendanceDayStatus.UNMARKED,
        source=AttendanceDaySource.SYSTEM,
        day_fraction=0.0,
        updated_by="system",
    )


def manual_edit(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    check_in: str | None,
    check_out: str | None,
    notes: str | None,
    status: AttendanceDayStatus | None,
    actor_id: str,
) -> AttendanceDay:
    employee = ensure_employee(db, employee_id)
    in_ts = combine_utc(day_date, check_in)
    out_ts = combine_utc(day_date, check_out)
    if in_ts is not None and out_ts is not None and out_ts < in_ts:
        out_ts += timedelta(days=1)

    _open_period_for_day(db, employee=employee, day_date=day_date)

    day = _locked_day(db, employee_id=employee.id, day_date=day_date)
    if day is None:
        day = _new_day(employee, day_date)
        db.add(day)

    if status is not None and day.source in IMMUTABLE_STATUS_SOURCES and status != day.status:
        db.rollback()
        raise ImmutableSourceError(
            f"Status of a {day.source.value} day cannot be changed manually."
        )

    day.check_in_at = in_ts
    day.check_out_at = out_ts
    day.notes = notes
    if status is not None and day.source not in IMMUTABLE_STATUS_SOURCES:
        day.status = status
        day.source = AttendanceDaySource.MANUAL
    day.updated_by = actor_id

    apply_day_metrics(day, resolve_shift(db, employee=employee, day_date=day_date))

    db.commit()
    db.refresh(day)
    logger.info(
        "attendance_day_manual_edit",
        extra={
            "employee_id": employee.id,
            "day_date": day_date,
            "status": day.status.value,
            "source": day.source.value,
            "work_minutes": day.work_minutes,
            "actor_id": actor_id,
        },
    )
    return day


def apply_external_day(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    source: AttendanceDaySource,
    leave_type_id: int | None = None,
    notes: str | None = None,
    actor_id: str,
) -> AttendanceDay:
    """Accept a leave or holiday write from an outside system.

    The row is owned by ``source`` afterwards, so manual edits can no longer
    change its status. Metrics go through the same path as manual rows.
    """
    if source not in _EXTERNAL_SOURCE_STATUS:
        raise ValidationFailedError("External source must be leave or holiday_calendar.")
    employee = ensure_employee(db, employee_id)
    if leave_type_id is not None:
        leave_type = db.get(LeaveType, leave_type_id)
        if leave_type is None or leave_type.company_id != employee.company_id:
            raise ValidationFailedError("Leave type not found.")

    _open_period_for_day(db, employee=employee, day_date=day_date)

    day = _locked_day(db, employee_id=employee.id, day_date=day_date)
    if day is None:
        day = _new_day(employee, day_date)
        db.add(day)

    day.status = _EXTERNAL_SOURCE_STATUS[source]
    day.source = source
    day.leave_type_id = leave_type_id if source == AttendanceDaySource.LEAVE else None
    if notes is not None:
        day.notes = notes
    day.updated_by = actor_id

    apply_day_metrics(day, resolve_shift(db, employee=employee, day_date=day_date))

    db.commit()
    db.refresh(day)
    logger.info(
        "attendance_day_external_sync",
        extra={
            "employee_id": employee.id,
            "day_date": day_date,
            "source": source.value,
            "leave_type_id": day.leave_type_id,
            "actor_id": actor_id,
        },
    )
    return day


def list_days(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_id: int | None = None,
) -> list[AttendanceDay]:
    start_date, end_date = month_bounds(year, month)
    stmt = select(AttendanceDay).where(
        AttendanceDay.company_id == company_id,
        AttendanceDay.day_date >= start_date,
        AttendanceDay.day_date <= end_date,
    )
    if employee_id is not None:
        stmt = stmt.where(AttendanceDay.employee_id == employee_id)
    stmt = stmt.order_by(AttendanceDay.employee_id.asc(), AttendanceDay.day_date.asc())
    return list(db.scalars(stmt).all())
