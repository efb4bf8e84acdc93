from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.errors import PeriodLockedError, ValidationFailedError
from attendance_engine.models import (
    AttendanceDay,
    AttendanceDaySource,
    AttendanceDayStatus,
    AttendancePeriod,
    Employee,
)
from attendance_engine.schemas import BatchFailureRead, BatchResultRead
from attendance_engine.services.attendance_days import apply_day_metrics
from attendance_engine.services.calendar_rules import CalendarRules
from attendance_engine.services.periods import (
    ensure_company,
    ensure_period_open,
    find_period,
    get_or_create_open_period,
)
from attendance_engine.services.shift_reference import ShiftResolver
from attendance_engine.settings import get_batch_chunk_retries, get_batch_chunk_size
from attendance_engine.timeutils import attendance_timezone, iter_month_days, month_bounds

logger = logging.getLogger("attendance_engine.periods")

_METRIC_FIELDS = (
    "shift_id",
    "work_minutes",
    "late_minutes",
    "early_leave_minutes",
    "ot_minutes",
    "day_fraction",
)


@dataclass(slots=True)
class ChunkCounts:
    created: int = 0
    updated: int = 0
    skipped: int = 0


@dataclass(slots=True)
class BatchFailure:
    employee_ids: list[int]
    error: str


@dataclass(slots=True)
class BatchResult:
    """Outcome of a chunked batch run.

    ``processed``, ``created``, ``updated`` and ``skipped`` count day rows;
    ``failed`` counts the employees whose chunk still failed after retries.
    """

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[BatchFailure] = field(default_factory=list)

    def add(self, counts: ChunkCounts) -> None:
        self.created += counts.created
        self.updated += counts.updated
        self.skipped += counts.skipped
        self.processed += counts.created + counts.updated + counts.skipped

    def to_read(self) -> BatchResultRead:
        return BatchResultRead(
            processed=self.processed,
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            failed=self.failed,
            failures=[
                BatchFailureRead(employee_ids=item.employee_ids, error=item.error)
                for item in self.failures
            ],
        )


def _chunked(values: Sequence[int], size: int) -> list[list[int]]:
    return [list(values[index : index + size]) for index in range(0, len(values), size)]


def _ensure_open_in_chunk(db: Session, *, company_id: int, year: int, month: int) -> AttendancePeriod:
    period = find_period(db, company_id=company_id, year=year, month=month, lock="share")
    return ensure_period_open(period)


def _run_chunks(
    db: Session,
    *,
    operation: str,
    company_id: int,
    year: int,
    month: int,
    employee_ids: Sequence[int],
    handler: Callable[[list[int]], ChunkCounts],
) -> BatchResult:
    """Run ``handler`` per chunk of employees, one transaction per chunk.

    A failed chunk is rolled back and retried; once retries are exhausted the
    failure is recorded and the run moves on. Committed chunks stay committed,
    so re-running the operation completes whatever is left. A period lock
    observed inside a chunk aborts the whole run.
    """
    result = BatchResult()
    retries = get_batch_chunk_retries()
    for chunk in _chunked(employee_ids, get_batch_chunk_size()):
        attempt = 0
        while True:
            try:
                _ensure_open_in_chunk(db, company_id=company_id, year=year, month=month)
                counts = handler(chunk)
                db.commit()
            except PeriodLockedError:
                db.rollback()
                raise
            except Exception as exc:
                db.rollback()
                attempt += 1
                if attempt <= retries:
                    logger.warning(
                        f"{operation}_chunk_retry",
                        extra={
                            "company_id": company_id,
                            "year": year,
                            "month": month,
                            "employee_ids": chunk,
                            "attempt": attempt,
                        },
                    )
                    continue
                logger.exception(
                    f"{operation}_chunk_failed",
                    extra={
                        "company_id": company_id,
                        "year": year,
                        "month": month,
                        "employee_ids": chunk,
                    },
                )
                result.failed += len(chunk)
                result.failures.append(BatchFailure(employee_ids=chunk, error=str(exc) or exc.__class__.__name__))
                break
            result.add(counts)
            break

    logger.info(
        f"{operation}_complete",
        extra={
            "company_id": company_id,
            "year": year,
            "month": month,
            "processed": result.processed,
            "rows_created": result.created,
            "updated": result.updated,
            "skipped": result.skipped,
            "failed": result.failed,
        },
    )
    return result


def _company_employees(db: Session, *, company_id: int, employee_ids: Sequence[int]) -> list[Employee]:
    if not employee_ids:
        return []
    return list(
        db.scalars(
            select(Employee)
            .where(Employee.company_id == company_id, Employee.id.in_(list(employee_ids)))
            .order_by(Employee.id.asc())
        ).all()
    )


def _validate_employee_ids(db: Session, *, company_id: int, employee_ids: Sequence[int]) -> list[int]:
    requested = sorted({int(item) for item in employee_ids})
    found = {employee.id for employee in _company_employees(db, company_id=company_id, employee_ids=requested)}
    missing = [item for item in requested if item not in found]
    if missing:
        raise ValidationFailedError(f"Unknown employee ids: {', '.join(str(item) for item in missing)}.")
    return requested


def generate_month(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    actor_id: str,
) -> tuple[AttendancePeriod, BatchResult]:
    """Create the missing day rows of the month for every active employee.

    Existing rows are never touched, so running it again only fills gaps such
    as employees added since the last run.
    """
    start_date, end_date = month_bounds(year, month)
    ensure_company(db, company_id)
    period = get_or_create_open_period(db, company_id=company_id, year=year, month=month)
    db.commit()

    employees = list(
        db.scalars(
            select(Employee)
            .where(Employee.company_id == company_id, Employee.is_active.is_(True))
            .order_by(Employee.id.asc())
        ).all()
    )
    employees_by_id = {employee.id: employee for employee in employees}
    days = iter_month_days(year, month)
    rules = CalendarRules(db, company_id=company_id, start_date=start_date, end_date=end_date)
    resolver = ShiftResolver(db, employees=employees, start_date=start_date, end_date=end_date)
    tz = attendance_timezone()

    def _generate_chunk(chunk: list[int]) -> ChunkCounts:
        counts = ChunkCounts()
        existing = {
            (item.employee_id, item.day_date)
            for item in db.execute(
                select(AttendanceDay.employee_id, AttendanceDay.day_date).where(
                    AttendanceDay.employee_id.in_(chunk),
                    AttendanceDay.day_date >= start_date,
                    AttendanceDay.day_date <= end_date,
                )
            )
        }
        for employee_id in chunk:
            employee = employees_by_id[employee_id]
            for day_date in days:
                if (employee_id, day_date) in existing:
                    counts.skipped += 1
                    continue
                default = rules.default_for(employee, day_date)
                row = AttendanceDay(
                    company_id=company_id,
                    employee_id=employee_id,
                    day_date=day_date,
                    status=default.status,
                    source=default.source,
                    notes=default.note,
                    updated_by=actor_id,
                )
                apply_day_metrics(row, resolver.resolve(employee_id, day_date), tz=tz)
                db.add(row)
                counts.created += 1
        db.flush()
        return counts

    result = _run_chunks(
        db,
        operation="attendance_generate",
        company_id=company_id,
        year=year,
        month=month,
        employee_ids=list(employees_by_id),
        handler=_generate_chunk,
    )
    db.refresh(period)
    return period, result


def recompute_month(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_ids: Sequence[int] | None = None,
) -> BatchResult:
    """Re-derive metrics of the month's rows from stored timestamps and shifts.

    Status and source are never changed. The shift is re-resolved for each
    day; a row whose shift no longer resolves keeps its stored shift.
    """
    start_date, end_date = month_bounds(year, month)
    ensure_company(db, company_id)
    ensure_period_open(find_period(db, company_id=company_id, year=year, month=month))

    if employee_ids is None:
        target_ids = sorted(
            db.scalars(
                select(AttendanceDay.employee_id)
                .where(
                    AttendanceDay.company_id == company_id,
                    AttendanceDay.day_date >= start_date,
                    AttendanceDay.day_date <= end_date,
                )
                .distinct()
            ).all()
        )
    else:
        target_ids = _validate_employee_ids(db, company_id=company_id, employee_ids=employee_ids)
    tz = attendance_timezone()

    def _recompute_chunk(chunk: list[int]) -> ChunkCounts:
        counts = ChunkCounts()
        employees = _company_employees(db, company_id=company_id, employee_ids=chunk)
        resolver = ShiftResolver(db, employees=employees, start_date=start_date, end_date=end_date)
        rows = db.scalars(
            select(AttendanceDay)
            .options(selectinload(AttendanceDay.shift))
            .where(
                AttendanceDay.employee_id.in_(chunk),
                AttendanceDay.day_date >= start_date,
                AttendanceDay.day_date <= end_date,
            )
            .order_by(AttendanceDay.employee_id.asc(), AttendanceDay.day_date.asc())
            .with_for_update()
        ).all()
        for row in rows:
            before = tuple(getattr(row, name) for name in _METRIC_FIELDS)
            shift = resolver.resolve(row.employee_id, row.day_date) or row.shift
            apply_day_metrics(row, shift, tz=tz)
            if tuple(getattr(row, name) for name in _METRIC_FIELDS) != before:
                counts.updated += 1
            else:
                counts.skipped += 1
        return counts

    return _run_chunks(
        db,
        operation="attendance_recompute",
        company_id=company_id,
        year=year,
        month=month,
        employee_ids=target_ids,
        handler=_recompute_chunk,
    )


def mark_weekdays_present(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    employee_ids: Sequence[int],
    actor_id: str,
) -> BatchResult:
    """Mark every unmarked Monday-Friday row of the given employees present.

    Rows in any other status are skipped, so leave, holiday and absent days
    are never downgraded.
    """
    start_date, end_date = month_bounds(year, month)
    ensure_company(db, company_id)
    ensure_period_open(find_period(db, company_id=company_id, year=year, month=month))
    target_ids = _validate_employee_ids(db, company_id=company_id, employee_ids=employee_ids)
    tz = attendance_timezone()

    def _mark_chunk(chunk: list[int]) -> ChunkCounts:
        counts = ChunkCounts()
        rows = db.scalars(
            select(AttendanceDay)
            .options(selectinload(AttendanceDay.shift))
            .where(
                AttendanceDay.employee_id.in_(chunk),
                AttendanceDay.day_date >= start_date,
                AttendanceDay.day_date <= end_date,
            )
            .order_by(AttendanceDay.employee_id.asc(), AttendanceDay.day_date.asc())
            .with_for_update()
        ).all()
        for row in rows:
            if row.status != AttendanceDayStatus.UNMARKED or row.day_date.weekday() >= 5:
                counts.skipped += 1
                continue
            row.status = AttendanceDayStatus.PRESENT
            row.source = AttendanceDaySource.MANUAL
            row.updated_by = actor_id
            apply_day_metrics(row, row.shift, tz=tz)
            counts.updated += 1
        return counts

    return _run_chunks(
        db,
        operation="attendance_mark_weekdays",
        company_id=company_id,
        year=year,
        month=month,
        employee_ids=target_ids,
        handler=_mark_chunk,
    )
