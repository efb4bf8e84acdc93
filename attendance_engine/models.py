from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_engine.db import Base

JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class AttendanceDayStatus(str, enum.Enum):
    UNMARKED = "unmarked"
    PRESENT = "present"
    ABSENT = "absent"
    LEAVE = "leave"
    HOLIDAY = "holiday"
    WEEKLY_OFF = "weekly_off"


class AttendanceDaySource(str, enum.Enum):
    SYSTEM = "system"
    MANUAL = "manual"
    LEAVE = "leave"
    HOLIDAY_CALENDAR = "holiday_calendar"
    WEEKLY_OFF_RULE = "weekly_off_rule"


IMMUTABLE_STATUS_SOURCES = frozenset({AttendanceDaySource.LEAVE, AttendanceDaySource.HOLIDAY_CALENDAR})


class AttendancePeriodStatus(str, enum.Enum):
    NOT_GENERATED = "not_generated"
    OPEN = "open"
    FROZEN = "frozen"


class WeeklyOffScope(str, enum.Enum):
    LOCATION = "location"
    EMPLOYEE = "employee"


class HolidayType(str, enum.Enum):
    PUBLIC = "public"
    COMPANY = "company"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    locations: Mapped[list[WorkLocation]] = relationship(back_populates="company")
    employees: Mapped[list[Employee]] = relationship(back_populates="company")


class WorkLocation(Base):
    __tablename__ = "work_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    company: Mapped[Company] = relationship(back_populates="locations")
    employees: Mapped[list[Employee]] = relationship(back_populates="location")
    shift_mappings: Mapped[list[LocationShift]] = relationship(back_populates="location")


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[int | None] = mapped_column(
        ForeignKey("work_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    employee_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    company: Mapped[Company] = relationship(back_populates="employees")
    location: Mapped[WorkLocation | None] = relationship(back_populates="employees")
    shift_assignments: Mapped[list[EmployeeShiftAssignment]] = relationship(back_populates="employee")
    attendance_days: Mapped[list[AttendanceDay]] = relationship(back_populates="employee")
    month_overrides: Mapped[list[MonthOverride]] = relationship(back_populates="employee")


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_shifts_company_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time_local: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    end_time_local: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    grace_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    min_half_day_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=240,
        server_default=text("240"),
    )
    min_full_day_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=480,
        server_default=text("480"),
    )
    ot_after_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_night_shift: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class LocationShift(Base):
    __tablename__ = "location_shifts"
    __table_args__ = (
        UniqueConstraint("location_id", "shift_id", "effective_from", name="uq_location_shifts_location_shift_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("work_locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    location: Mapped[WorkLocation] = relationship(back_populates="shift_mappings")
    shift: Mapped[Shift] = relationship()


class EmployeeShiftAssignment(Base):
    __tablename__ = "employee_shift_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="shift_assignments")
    shift: Mapped[Shift] = relationship()


class WeeklyOffRule(Base):
    __tablename__ = "weekly_off_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scope_type: Mapped[WeeklyOffScope] = mapped_column(
        Enum(WeeklyOffScope, name="weekly_off_scope", values_callable=_enum_values),
        nullable=False,
    )
    location_id: Mapped[int | None] = mapped_column(
        ForeignKey("work_locations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    employee_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    week_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)


class HolidayCalendar(Base):
    __tablename__ = "holiday_calendars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    holidays: Mapped[list[CalendarHoliday]] = relationship(back_populates="calendar")


class CalendarHoliday(Base):
    __tablename__ = "calendar_holidays"
    __table_args__ = (
        UniqueConstraint("calendar_id", "holiday_date", name="uq_calendar_holidays_calendar_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    calendar_id: Mapped[int] = mapped_column(
        ForeignKey("holiday_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    holiday_type: Mapped[HolidayType] = mapped_column(
        Enum(HolidayType, name="holiday_type", values_callable=_enum_values),
        nullable=False,
        default=HolidayType.PUBLIC,
    )
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    calendar: Mapped[HolidayCalendar] = relationship(back_populates="holidays")


class CalendarLocation(Base):
    __tablename__ = "calendar_locations"
    __table_args__ = (
        UniqueConstraint("location_id", name="uq_calendar_locations_location"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    calendar_id: Mapped[int] = mapped_column(
        ForeignKey("holiday_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("work_locations.id", ondelete="CASCADE"),
        nullable=False,
    )


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_leave_types_company_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class AttendancePeriod(Base):
    __tablename__ = "attendance_periods"
    __table_args__ = (
        UniqueConstraint("company_id", "year", "month", name="uq_attendance_periods_company_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[AttendancePeriodStatus] = mapped_column(
        Enum(AttendancePeriodStatus, name="attendance_period_status", values_callable=_enum_values),
        nullable=False,
        default=AttendancePeriodStatus.OPEN,
    )
    frozen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    frozen_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AttendanceDay(Base):
    __tablename__ = "attendance_days"
    __table_args__ = (
        UniqueConstraint("employee_id", "day_date", name="uq_attendance_days_employee_day"),
        Index("ix_attendance_days_company_day", "company_id", "day_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AttendanceDayStatus] = mapped_column(
        Enum(AttendanceDayStatus, name="attendance_day_status", values_callable=_enum_values),
        nullable=False,
        default=AttendanceDayStatus.UNMARKED,
    )
    source: Mapped[AttendanceDaySource] = mapped_column(
        Enum(AttendanceDaySource, name="attendance_day_source", values_callable=_enum_values),
        nullable=False,
        default=AttendanceDaySource.SYSTEM,
    )
    check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    work_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    late_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    early_leave_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ot_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_fraction: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
    )
    leave_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("leave_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendance_days")
    shift: Mapped[Shift | None] = relationship()
    leave_type: Mapped[LeaveType | None] = relationship()


class MonthOverride(Base):
    __tablename__ = "month_overrides"
    __table_args__ = (
        UniqueConstraint("employee_id", "year", "month", name="uq_month_overrides_employee_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    present_days: Mapped[float | None] = mapped_column(Float, nullable=True)
    absent_days: Mapped[float | None] = mapped_column(Float, nullable=True)
    paid_leave_days: Mapped[float | None] = mapped_column(Float, nullable=True)
    ot_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    use_override: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False, default="admin")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="month_overrides")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSON_DOCUMENT,
        nullable=False,
        default=dict,
    )
