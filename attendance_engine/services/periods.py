from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_engine.errors import NotFoundError, PeriodLockedError, ValidationFailedError
from attendance_engine.models import AttendancePeriod, AttendancePeriodStatus, Company
from attendance_engine.schemas import PeriodRead
from attendance_engine.timeutils import validate_month

logger = logging.getLogger("attendance_engine.periods")

PeriodLock = Literal["share", "update"] | None


def ensure_company(db: Session, company_id: int) -> Company:
    company = db.get(Company, company_id)
    if company is None:
        raise ValidationFailedError("Company not found.")
    return company


def find_period(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    lock: PeriodLock = None,
) -> AttendancePeriod | None:
    stmt = select(AttendancePeriod).where(
        AttendancePeriod.company_id == company_id,
        AttendancePeriod.year == year,
        AttendancePeriod.month == month,
    )
    if lock == "update":
        stmt = stmt.with_for_update()
    elif lock == "share":
        stmt = stmt.with_for_update(read=True)
    return db.scalar(stmt)


def period_status(period: AttendancePeriod | None) -> AttendancePeriodStatus:
    if period is None:
        return AttendancePeriodStatus.NOT_GENERATED
    return period.status


def ensure_period_open(period: AttendancePeriod | None) -> AttendancePeriod:
    if period is None:
        raise PeriodLockedError("Attendance period has not been generated.")
    if period.status != AttendancePeriodStatus.OPEN:
        raise PeriodLockedError("Attendance period is frozen.")
    return period


def to_period_read(period: AttendancePeriod | None, *, company_id: int, year: int, month: int) -> PeriodRead:
    if period is None:
        return PeriodRead(
            company_id=company_id,
            year=year,
            month=month,
            status=AttendancePeriodStatus.NOT_GENERATED,
        )
    return PeriodRead.model_validate(period)


def get_or_create_open_period(db: Session, *, company_id: int, year: int, month: int) -> AttendancePeriod:
    """Lock the period row for generation, creating it as open on first use.

    Two concurrent first generations race on the unique constraint; the loser
    rolls back and re-reads the winner's row.
    """
    period = find_period(db, company_id=company_id, year=year, month=month, lock="update")
    if period is None:
        period = AttendancePeriod(
            company_id=company_id,
            year=year,
            month=month,
            status=AttendancePeriodStatus.OPEN,
        )
        db.add(period)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                "attendance_period_create_race",
                extra={"company_id": company_id, "year": year, "month": month},
            )
        period = find_period(db, company_id=company_id, year=year, month=month, lock="update")
        if period is None:
            raise NotFoundError("Attendance period not found.")
    if period.status == AttendancePeriodStatus.FROZEN:
        db.rollback()
        raise PeriodLockedError("Attendance period is frozen.")
    return period


def _transition(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    target: AttendancePeriodStatus,
    actor_id: str,
) -> tuple[AttendancePeriod, bool]:
    validate_month(year, month)
    ensure_company(db, company_id)
    period = find_period(db, company_id=company_id, year=year, month=month, lock="update")
    if period is None:
        raise NotFoundError("Attendance period has not been generated.")

    if period.status == target:
        # Releases the row lock; a repeated transition changes nothing.
        db.rollback()
        return period, False

    if target == AttendancePeriodStatus.FROZEN:
        period.status = AttendancePeriodStatus.FROZEN
        period.frozen_at = datetime.now(timezone.utc)
        period.frozen_by = actor_id
    else:
        period.status = AttendancePeriodStatus.OPEN
        period.frozen_at = None
        period.frozen_by = None

    db.commit()
    db.refresh(period)
    logger.info(
        "attendance_period_transition",
        extra={
            "company_id": company_id,
            "year": year,
            "month": month,
            "status": period.status.value,
            "actor_id": actor_id,
        },
    )
    return period, True


def freeze_period(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    actor_id: str,
) -> tuple[AttendancePeriod, bool]:
    return _transition(
        db,
        company_id=company_id,
        year=year,
        month=month,
        target=AttendancePeriodStatus.FROZEN,
        actor_id=actor_id,
    )


def unfreeze_period(
    db: Session,
    *,
    company_id: int,
    year: int,
    month: int,
    actor_id: str,
) -> tuple[AttendancePeriod, bool]:
    return _transition(
        db,
        company_id=company_id,
        year=year,
        month=month,
        target=AttendancePeriodStatus.OPEN,
        actor_id=actor_id,
    )


def get_period(db: Session, *, company_id: int, year: int, month: int) -> PeriodRead:
    validate_month(year, month)
    period = find_period(db, company_id=company_id, year=year, month=month)
    return to_period_read(period, company_id=company_id, year=year, month=month)


def list_periods(db: Session, *, company_id: int, year: int | None = None) -> list[AttendancePeriod]:
    stmt = select(AttendancePeriod).where(AttendancePeriod.company_id == company_id)
    if year is not None:
        stmt = stmt.where(AttendancePeriod.year == year)
    stmt = stmt.order_by(AttendancePeriod.year.desc(), AttendancePeriod.month.desc())
    return list(db.scalars(stmt).all())
