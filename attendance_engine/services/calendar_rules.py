from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendance_engine.models import (
    AttendanceDaySource,
    AttendanceDayStatus,
    CalendarHoliday,
    CalendarLocation,
    Employee,
    HolidayCalendar,
    WeeklyOffRule,
    WeeklyOffScope,
)
from attendance_engine.timeutils import week_of_month


@dataclass(frozen=True, slots=True)
class DayDefault:
    status: AttendanceDayStatus
    source: AttendanceDaySource
    note: str | None = None


UNMARKED_DEFAULT = DayDefault(status=AttendanceDayStatus.UNMARKED, source=AttendanceDaySource.SYSTEM)

_SCOPE_PRIORITY: dict[WeeklyOffScope, int] = {
    WeeklyOffScope.EMPLOYEE: 200,
    WeeklyOffScope.LOCATION: 100,
}


def _is_effective(rule: WeeklyOffRule, day_date: date) -> bool:
    if rule.effective_from is not None and day_date < rule.effective_from:
        return False
    if rule.effective_to is not None and day_date > rule.effective_to:
        return False
    return True


def weekly_off_rule_applies(rule: WeeklyOffRule, *, employee: Employee, day_date: date) -> bool:
    if rule.weekday != day_date.weekday():
        return False
    if rule.week_of_month is not None and rule.week_of_month != week_of_month(day_date):
        return False
    if not _is_effective(rule, day_date):
        return False
    if rule.scope_type == WeeklyOffScope.EMPLOYEE:
        return rule.employee_id == employee.id
    # A location rule without a location applies company-wide.
    return rule.location_id is None or rule.location_id == employee.location_id


def resolve_weekly_off_rule(
    rules: Iterable[WeeklyOffRule],
    *,
    employee: Employee,
    day_date: date,
) -> WeeklyOffRule | None:
    """Pick the single rule that decides the weekday for this employee.

    Employee rules beat location rules, a rule for a specific location beats
    a company-wide one, and a week-of-month rule beats an every-week rule.
    The winning rule's ``is_off`` is final, so an employee rule with
    ``is_off = False`` cancels a location off-day.
    """
    applicable = [rule for rule in rules if weekly_off_rule_applies(rule, employee=employee, day_date=day_date)]
    if not applicable:
        return None
    applicable.sort(
        key=lambda rule: (
            _SCOPE_PRIORITY[rule.scope_type],
            rule.location_id is not None,
            rule.week_of_month is not None,
            rule.effective_from.toordinal() if rule.effective_from else 0,
            rule.id,
        ),
        reverse=True,
    )
    return applicable[0]


class CalendarRules:
    """Preloaded holiday calendars and weekly-off rules for one company and date range."""

    def __init__(self, db: Session, *, company_id: int, start_date: date, end_date: date) -> None:
        self.company_id = company_id

        calendars = list(
            db.scalars(
                select(HolidayCalendar)
                .where(HolidayCalendar.company_id == company_id)
                .order_by(HolidayCalendar.id.asc())
            ).all()
        )
        calendar_ids = [item.id for item in calendars]
        self._default_calendar_id: int | None = next(
            (item.id for item in calendars if item.is_default),
            None,
        )

        self._calendar_by_location: dict[int, int] = {}
        self._holidays: dict[int, dict[date, CalendarHoliday]] = defaultdict(dict)
        if calendar_ids:
            for mapping in db.scalars(
                select(CalendarLocation).where(CalendarLocation.calendar_id.in_(calendar_ids))
            ).all():
                self._calendar_by_location[mapping.location_id] = mapping.calendar_id

            for holiday in db.scalars(
                select(CalendarHoliday).where(
                    CalendarHoliday.calendar_id.in_(calendar_ids),
                    CalendarHoliday.holiday_date >= start_date,
                    CalendarHoliday.holiday_date <= end_date,
                    CalendarHoliday.is_optional.is_(False),
                )
            ).all():
                self._holidays[holiday.calendar_id][holiday.holiday_date] = holiday

        self._weekly_off_rules = list(
            db.scalars(
                select(WeeklyOffRule)
                .where(WeeklyOffRule.company_id == company_id)
                .order_by(WeeklyOffRule.id.asc())
            ).all()
        )

        self._chain: tuple[Callable[[Employee, date], DayDefault | None], ...] = (
            self._holiday_default,
            self._weekly_off_default,
        )

    def calendar_id_for(self, employee: Employee) -> int | None:
        if employee.location_id is not None and employee.location_id in self._calendar_by_location:
            return self._calendar_by_location[employee.location_id]
        return self._default_calendar_id

    def holiday_for(self, employee: Employee, day_date: date) -> CalendarHoliday | None:
        calendar_id = self.calendar_id_for(employee)
        if calendar_id is None:
            return None
        return self._holidays.get(calendar_id, {}).get(day_date)

    def is_weekly_off(self, employee: Employee, day_date: date) -> bool:
        rule = resolve_weekly_off_rule(self._weekly_off_rules, employee=employee, day_date=day_date)
        return rule is not None and bool(rule.is_off)

    def _holiday_default(self, employee: Employee, day_date: date) -> DayDefault | None:
        holiday = self.holiday_for(employee, day_date)
        if holiday is None:
            return None
        return DayDefault(
            status=AttendanceDayStatus.HOLIDAY,
            source=AttendanceDaySource.HOLIDAY_CALENDAR,
            note=holiday.name,
        )

    def _weekly_off_default(self, employee: Employee, day_date: date) -> DayDefault | None:
        if not self.is_weekly_off(employee, day_date):
            return None
        return DayDefault(status=AttendanceDayStatus.WEEKLY_OFF, source=AttendanceDaySource.WEEKLY_OFF_RULE)

    def default_for(self, employee: Employee, day_date: date) -> DayDefault:
        for step in self._chain:
            resolved = step(employee, day_date)
            if resolved is not None:
                return resolved
        return UNMARKED_DEFAULT
