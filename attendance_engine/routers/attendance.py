from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from attendance_engine.audit import (
    DAY_ENTITY,
    EXPORT_ENTITY,
    OVERRIDE_ENTITY,
    PERIOD_ENTITY,
    actor_id_from_claims,
    log_admin_audit,
    month_key,
)
from attendance_engine.db import get_db
from attendance_engine.models import AttendanceDaySource
from attendance_engine.schemas import (
    AttendanceDayRead,
    AttendanceExceptionRead,
    AttendanceIssueKey,
    AttendanceRegisterRead,
    BatchResultRead,
    DayEditRequest,
    ExternalDaySyncRequest,
    GenerateResponse,
    MarkWeekdaysPresentRequest,
    MonthOverrideRead,
    MonthOverrideUpsertRequest,
    MonthSummaryRead,
    PeriodRead,
    PeriodRequest,
    PeriodTransitionResponse,
    ReconciliationRead,
    RecomputeRequest,
)
from attendance_engine.security import require_attendance_manager, require_attendance_reader
from attendance_engine.services.attendance_days import apply_external_day, list_days, manual_edit
from attendance_engine.services.exports import build_reconciliation_xlsx_bytes
from attendance_engine.services.month_overrides import clear_override, resolve_effective, upsert_override
from attendance_engine.services.period_batches import generate_month, mark_weekdays_present, recompute_month
from attendance_engine.services.periods import (
    freeze_period,
    get_period,
    list_periods,
    to_period_read,
    unfreeze_period,
)
from attendance_engine.services.reconciliation import build_reconciliation
from attendance_engine.services.reports import build_attendance_exceptions, build_attendance_register

router = APIRouter(prefix="/api/attendance", tags=["attendance"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _period_details(payload: PeriodRequest) -> dict[str, Any]:
    return {"company_id": payload.company_id, "year": payload.year, "month": payload.month}


@router.post("/periods/generate", response_model=GenerateResponse)
def generate_period_endpoint(
    payload: PeriodRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    period, result = generate_month(
        db,
        company_id=payload.company_id,
        year=payload.year,
        month=payload.month,
        actor_id=actor_id_from_claims(claims),
    )
    response = GenerateResponse(
        period=to_period_read(period, company_id=payload.company_id, year=payload.year, month=payload.month),
        result=result.to_read(),
    )
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="ATTENDANCE_PERIOD_GENERATED",
        entity_type=PERIOD_ENTITY,
        entity_id=str(period.id),
        details={**_period_details(payload), "created": result.created, "failed": result.failed},
    )
    return response


@router.post("/periods/freeze", response_model=PeriodTransitionResponse)
def freeze_period_endpoint(
    payload: PeriodRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> PeriodTransitionResponse:
    period, changed = freeze_period(
        db,
        company_id=payload.company_id,
        year=payload.year,
        month=payload.month,
        actor_id=actor_id_from_claims(claims),
    )
    response = PeriodTransitionResponse(period=PeriodRead.model_validate(period), changed=changed)
    if changed:
        log_admin_audit(
            db,
            request,
            claims=claims,
            action="ATTENDANCE_PERIOD_FROZEN",
            entity_type=PERIOD_ENTITY,
            entity_id=str(period.id),
            details=_period_details(payload),
        )
    return response


@router.post("/periods/unfreeze", response_model=PeriodTransitionResponse)
def unfreeze_period_endpoint(
    payload: PeriodRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> PeriodTransitionResponse:
    period, changed = unfreeze_period(
        db,
        company_id=payload.company_id,
        year=payload.year,
        month=payload.month,
        actor_id=actor_id_from_claims(claims),
    )
    response = PeriodTransitionResponse(period=PeriodRead.model_validate(period), changed=changed)
    if changed:
        log_admin_audit(
            db,
            request,
            claims=claims,
            action="ATTENDANCE_PERIOD_UNFROZEN",
            entity_type=PERIOD_ENTITY,
            entity_id=str(period.id),
            details=_period_details(payload),
        )
    return response


@router.get(
    "/periods",
    response_model=list[PeriodRead],
    dependencies=[Depends(require_attendance_reader)],
)
def list_periods_endpoint(
    company_id: int = Query(..., ge=1),
    year: int | None = Query(default=None, ge=1970),
    month: int | None = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
) -> list[PeriodRead]:
    if year is not None and month is not None:
        return [get_period(db, company_id=company_id, year=year, month=month)]
    return [PeriodRead.model_validate(item) for item in list_periods(db, company_id=company_id, year=year)]


@router.post("/periods/recompute", response_model=BatchResultRead)
def recompute_period_endpoint(
    payload: RecomputeRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> BatchResultRead:
    result = recompute_month(
        db,
        company_id=payload.company_id,
        year=payload.year,
        month=payload.month,
        employee_ids=payload.employee_ids,
    )
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="ATTENDANCE_RECOMPUTED",
        entity_type=PERIOD_ENTITY,
        entity_id=month_key(payload.company_id, payload.year, payload.month),
        details={
            **_period_details(payload),
            "employee_ids": payload.employee_ids,
            "updated": result.updated,
            "failed": result.failed,
        },
    )
    return result.to_read()


@router.post("/periods/mark-weekdays-present", response_model=BatchResultRead)
def mark_weekdays_present_endpoint(
    payload: MarkWeekdaysPresentRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> BatchResultRead:
    result = mark_weekdays_present(
        db,
        company_id=payload.company_id,
        year=payload.year,
        month=payload.month,
        employee_ids=payload.employee_ids,
        actor_id=actor_id_from_claims(claims),
    )
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="ATTENDANCE_WEEKDAYS_MARKED_PRESENT",
        entity_type=PERIOD_ENTITY,
        entity_id=month_key(payload.company_id, payload.year, payload.month),
        details={**_period_details(payload), "employee_ids": payload.employee_ids, "updated": result.updated},
    )
    return result.to_read()


@router.get(
    "/days",
    response_model=list[AttendanceDayRead],
    dependencies=[Depends(require_attendance_reader)],
)
def list_days_endpoint(
    company_id: int = Query(..., ge=1),
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    employee_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[AttendanceDayRead]:
    return list_days(db, company_id=company_id, year=year, month=month, employee_id=employee_id)


@router.put("/days/{employee_id}/{day_date}", response_model=AttendanceDayRead)
def manual_edit_endpoint(
    employee_id: int,
    day_date: date,
    payload: DayEditRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> AttendanceDayRead:
    day = manual_edit(
        db,
        employee_id=employee_id,
        day_date=day_date,
        check_in=payload.check_in,
        check_out=payload.check_out,
        notes=payload.notes,
        status=payload.status,
        actor_id=actor_id_from_claims(claims),
    )
    response = AttendanceDayRead.model_validate(day)
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="ATTENDANCE_DAY_EDITED",
        entity_type=DAY_ENTITY,
        entity_id=str(day.id),
        details={
            "employee_id": employee_id,
            "day_date": day_date.isoformat(),
            "check_in": payload.check_in,
            "check_out": payload.check_out,
            "status": payload.status.value if payload.status is not None else None,
        },
    )
    return response


@router.post("/days/sync", response_model=AttendanceDayRead)
def sync_external_day_endpoint(
    payload: ExternalDaySyncRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> AttendanceDayRead:
    day = apply_external_day(
        db,
        employee_id=payload.employee_id,
        day_date=payload.day_date,
        source=AttendanceDaySource(payload.source),
        leave_type_id=payload.leave_type_id,
        notes=payload.notes,
        actor_id=actor_id_from_claims(claims),
    )
    response = AttendanceDayRead.model_validate(day)
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="ATTENDANCE_DAY_SYNCED",
        entity_type=DAY_ENTITY,
        entity_id=str(day.id),
        details={
            "employee_id": payload.employee_id,
            "day_date": payload.day_date.isoformat(),
            "source": payload.source,
            "leave_type_id": payload.leave_type_id,
        },
    )
    return response


@router.put("/overrides/{employee_id}", response_model=MonthOverrideRead)
def upsert_override_endpoint(
    employee_id: int,
    payload: MonthOverrideUpsertRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> MonthOverrideRead:
    override = upsert_override(
        db,
        employee_id=employee_id,
        payload=payload,
        updated_by=actor_id_from_claims(claims),
    )
    response = MonthOverrideRead.model_validate(override)
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="MONTH_OVERRIDE_UPSERT",
        entity_type=OVERRIDE_ENTITY,
        entity_id=str(override.id),
        details={"employee_id": employee_id, **payload.model_dump()},
    )
    return response


@router.delete("/overrides/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_override_endpoint(
    employee_id: int,
    request: Request,
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    claims: dict[str, Any] = Depends(require_attendance_manager),
    db: Session = Depends(get_db),
) -> Response:
    clear_override(
        db,
        employee_id=employee_id,
        year=year,
        month=month,
        cleared_by=actor_id_from_claims(claims),
    )
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="MONTH_OVERRIDE_CLEARED",
        entity_type=OVERRIDE_ENTITY,
        entity_id=month_key(employee_id, year, month),
        details={"employee_id": employee_id, "year": year, "month": month},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/summary/{employee_id}",
    response_model=MonthSummaryRead,
    dependencies=[Depends(require_attendance_reader)],
)
def month_summary_endpoint(
    employee_id: int,
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
) -> MonthSummaryRead:
    return resolve_effective(db, employee_id=employee_id, year=year, month=month)


@router.get(
    "/reconciliation",
    response_model=ReconciliationRead,
    dependencies=[Depends(require_attendance_reader)],
)
def reconciliation_endpoint(
    company_id: int = Query(..., ge=1),
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    employee_ids: list[int] | None = Query(default=None),
    db: Session = Depends(get_db),
) -> ReconciliationRead:
    return build_reconciliation(
        db,
        company_id=company_id,
        year=year,
        month=month,
        employee_ids=employee_ids,
    )


@router.get("/reconciliation.xlsx")
def reconciliation_xlsx_endpoint(
    request: Request,
    company_id: int = Query(..., ge=1),
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    include_register: bool = Query(default=True),
    claims: dict[str, Any] = Depends(require_attendance_reader),
    db: Session = Depends(get_db),
) -> Response:
    payload = build_reconciliation_xlsx_bytes(
        db,
        company_id=company_id,
        year=year,
        month=month,
        include_register=include_register,
    )
    log_admin_audit(
        db,
        request,
        claims=claims,
        action="RECONCILIATION_EXPORT_XLSX",
        entity_type=EXPORT_ENTITY,
        entity_id=month_key(company_id, year, month),
        details={"company_id": company_id, "year": year, "month": month, "include_register": include_register},
    )
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="attendance-reconciliation-{company_id}-{year}-{month:02d}.xlsx"',
        },
    )


@router.get(
    "/reports/register",
    response_model=AttendanceRegisterRead,
    dependencies=[Depends(require_attendance_reader)],
)
def attendance_register_endpoint(
    company_id: int = Query(..., ge=1),
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    employee_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> AttendanceRegisterRead:
    return build_attendance_register(db, company_id=company_id, year=year, month=month, employee_id=employee_id)


@router.get(
    "/reports/exceptions",
    response_model=list[AttendanceExceptionRead],
    dependencies=[Depends(require_attendance_reader)],
)
def attendance_exceptions_endpoint(
    company_id: int = Query(..., ge=1),
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    employee_id: int | None = Query(default=None, ge=1),
    issue_key: AttendanceIssueKey | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[AttendanceExceptionRead]:
    return build_attendance_exceptions(
        db,
        company_id=company_id,
        year=year,
        month=month,
        employee_id=employee_id,
        issue_key=issue_key,
    )
