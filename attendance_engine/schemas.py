from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attendance_engine.models import AttendanceDaySource, AttendanceDayStatus, AttendancePeriodStatus

HHMM_PATTERN = r"^\d{2}:\d{2}$"


class PeriodRequest(BaseModel):
    company_id: int = Field(ge=1)
    year: int = Field(ge=1970, le=9999)
    month: int = Field(ge=1, le=12)


class RecomputeRequest(PeriodRequest):
    employee_ids: list[int] | None = None


class MarkWeekdaysPresentRequest(PeriodRequest):
    employee_ids: list[int] = Field(min_length=1)


class PeriodRead(BaseModel):
    company_id: int
    year: int
    month: int
    status: AttendancePeriodStatus
    frozen_at: datetime | None = None
    frozen_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PeriodTransitionResponse(BaseModel):
    period: PeriodRead
    changed: bool


class BatchFailureRead(BaseModel):
    employee_ids: list[int]
    error: str


class BatchResultRead(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[BatchFailureRead] = Field(default_factory=list)


class GenerateResponse(BaseModel):
    period: PeriodRead
    result: BatchResultRead


class DayEditRequest(BaseModel):
    check_in: str | None = Field(default=None, pattern=HHMM_PATTERN)
    check_out: str | None = Field(default=None, pattern=HHMM_PATTERN)
    notes: str | None = Field(default=None, max_length=1000)
    status: AttendanceDayStatus | None = None


class ExternalDaySyncRequest(BaseModel):
    employee_id: int = Field(ge=1)
    day_date: date
    source: Literal["leave", "holiday_calendar"]
    leave_type_id: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_leave_type(self) -> "ExternalDaySyncRequest":
        if self.source == "holiday_calendar" and self.leave_type_id is not None:
            raise ValueError("leave_type_id is only valid for leave rows")
        return self


class AttendanceDayRead(BaseModel):
    id: int
    company_id: int
    employee_id: int
    day_date: date
    status: AttendanceDayStatus
    source: AttendanceDaySource
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    notes: str | None = None
    work_minutes: int | None = None
    late_minutes: int | None = None
    early_leave_minutes: int | None = None
    ot_minutes: int | None = None
    day_fraction: float
    shift_id: int | None = None
    leave_type_id: int | None = None
    updated_by: str

    model_config = ConfigDict(from_attributes=True)


class MonthOverrideUpsertRequest(BaseModel):
    year: int = Field(ge=1970, le=9999)
    month: int = Field(ge=1, le=12)
    present_days: float | None = Field(default=None, ge=0, le=31)
    absent_days: float | None = Field(default=None, ge=0, le=31)
    paid_leave_days: float | None = Field(default=None, ge=0, le=31)
    ot_minutes: int | None = Field(default=None, ge=0)
    use_override: bool = True
    notes: str | None = Field(default=None, max_length=1000)


class MonthOverrideRead(BaseModel):
    id: int
    employee_id: int
    year: int
    month: int
    present_days: float | None = None
    absent_days: float | None = None
    paid_leave_days: float | None = None
    ot_minutes: int | None = None
    use_override: bool
    notes: str | None = None
    updated_by: str
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MonthSummaryRead(BaseModel):
    employee_id: int
    year: int
    month: int
    computed_present_days: float
    computed_absent_days: float
    computed_paid_leave_days: float
    computed_ot_minutes: int
    override_present_days: float | None = None
    override_absent_days: float | None = None
    override_paid_leave_days: float | None = None
    override_ot_minutes: int | None = None
    effective_present_days: float
    effective_absent_days: float
    effective_paid_leave_days: float
    effective_ot_minutes: int
    leave_unpaid_days: float = 0.0
    holiday_days: float = 0.0
    weekly_off_days: float = 0.0
    unmarked_days: float = 0.0
    payable_days_suggested: float = 0.0
    lop_days_suggested: float = 0.0
    payable_days_effective: float = 0.0
    lop_days_effective: float = 0.0
    use_override: bool = False
    override_notes: str | None = None
    attendance_overridden: bool = False


class ReconciliationRowRead(MonthSummaryRead):
    employee_code: str | None = None
    full_name: str
    period_status: AttendancePeriodStatus
    attendance_unfrozen_warning: bool


class ReconciliationRead(BaseModel):
    company_id: int
    year: int
    month: int
    period_status: AttendancePeriodStatus
    frozen_at: datetime | None = None
    rows: list[ReconciliationRowRead] = Field(default_factory=list)


class RegisterCellRead(BaseModel):
    day_date: date
    status: AttendanceDayStatus | None = None
    code: str


class RegisterRowRead(BaseModel):
    employee_id: int
    employee_code: str | None = None
    full_name: str
    days: list[RegisterCellRead] = Field(default_factory=list)
    present_days: float = 0
    absent_days: int = 0
    leave_days: float = 0
    holiday_days: int = 0
    weekly_off_days: int = 0
    unmarked_days: int = 0


class AttendanceRegisterRead(BaseModel):
    company_id: int
    year: int
    month: int
    period_status: AttendancePeriodStatus
    rows: list[RegisterRowRead] = Field(default_factory=list)


AttendanceIssueKey = Literal[
    "MISSING_CHECK_IN",
    "MISSING_CHECK_OUT",
    "UNMARKED_DAY",
    "PRESENT_WITHOUT_SHIFT",
    "LATE_ARRIVAL",
    "EARLY_LEAVE",
    "BELOW_HALF_DAY",
]


class AttendanceExceptionRead(BaseModel):
    employee_id: int
    employee_code: str | None = None
    full_name: str
    day_date: date
    status: AttendanceDayStatus
    issue_key: AttendanceIssueKey
    detail: str | None = None
