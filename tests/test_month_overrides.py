from __future__ import annotations

import unittest
from datetime import date

from attendance_engine.errors import NotFoundError
from attendance_engine.models import AttendanceDay, AttendanceDaySource, AttendanceDayStatus, LeaveType, MonthOverride
from attendance_engine.schemas import MonthOverrideUpsertRequest
from attendance_engine.services.attendance_days import apply_external_day, manual_edit
from attendance_engine.services.month_overrides import (
    ComputedTotals,
    build_month_summary,
    clear_override,
    compute_totals,
    get_override,
    resolve_effective,
    upsert_override,
)
from attendance_engine.services.period_batches import generate_month
from attendance_engine.services.periods import freeze_period
from sqlite_support import new_session, seed_company

COMPUTED = ComputedTotals(present_days=21.5, absent_days=2.0, paid_leave_days=1.0, ot_minutes=130)


def _day(status: AttendanceDayStatus, fraction: float, *, ot: int | None = None, paid: bool | None = None) -> AttendanceDay:
    day = AttendanceDay(status=status, day_fraction=fraction, ot_minutes=ot)
    if paid is not None:
        day.leave_type = LeaveType(code="LV", name="Leave", is_paid=paid)
    return day


class OverrideFallbackTests(unittest.TestCase):
    def test_compute_totals_counts_paid_leave_only(self) -> None:
        totals = compute_totals(
            [
                _day(AttendanceDayStatus.PRESENT, 1.0, ot=25),
                _day(AttendanceDayStatus.PRESENT, 0.5),
                _day(AttendanceDayStatus.ABSENT, 0.0),
                _day(AttendanceDayStatus.LEAVE, 1.0, paid=True),
                _day(AttendanceDayStatus.LEAVE, 1.0, paid=False),
                _day(AttendanceDayStatus.LEAVE, 1.0),
                _day(AttendanceDayStatus.WEEKLY_OFF, 0.0),
            ]
        )

        self.assertEqual(totals.present_days, 1.5)
        self.assertEqual(totals.absent_days, 1.0)
        self.assertEqual(totals.paid_leave_days, 1.0)
        self.assertEqual(totals.ot_minutes, 25)

    def test_payable_and_loss_of_pay_days_follow_effective_values(self) -> None:
        totals = compute_totals(
            [
                _day(AttendanceDayStatus.PRESENT, 1.0),
                _day(AttendanceDayStatus.PRESENT, 0.5),
                _day(AttendanceDayStatus.ABSENT, 0.0),
                _day(AttendanceDayStatus.LEAVE, 1.0, paid=True),
                _day(AttendanceDayStatus.LEAVE, 1.0, paid=False),
                _day(AttendanceDayStatus.LEAVE, 1.0),
                _day(AttendanceDayStatus.WEEKLY_OFF, 0.0),
                _day(AttendanceDayStatus.HOLIDAY, 0.0),
                _day(AttendanceDayStatus.UNMARKED, 0.0),
            ]
        )
        self.assertEqual(
            (totals.leave_unpaid_days, totals.holiday_days, totals.weekly_off_days, totals.unmarked_days),
            (2.0, 1.0, 1.0, 1.0),
        )
        self.assertEqual(totals.day_count, 9)

        plain = build_month_summary(employee_id=1, year=2026, month=3, computed=totals, override=None)
        override = MonthOverride(employee_id=1, year=2026, month=3, present_days=3.0, use_override=True)
        overridden = build_month_summary(employee_id=1, year=2026, month=3, computed=totals, override=override)

        self.assertEqual(plain.payable_days_suggested, 4.5)
        self.assertEqual(plain.lop_days_suggested, 4.5)
        self.assertEqual(plain.payable_days_effective, 4.5)
        self.assertEqual(overridden.payable_days_suggested, 4.5)
        self.assertEqual(overridden.payable_days_effective, 6.0)
        self.assertEqual(overridden.lop_days_effective, 3.0)
        self.assertEqual(overridden.leave_unpaid_days, 2.0)

    def test_each_field_falls_back_on_its_own(self) -> None:
        override = MonthOverride(employee_id=1, year=2026, month=3, present_days=20.0, use_override=True)

        summary = build_month_summary(employee_id=1, year=2026, month=3, computed=COMPUTED, override=override)

        self.assertEqual(summary.effective_present_days, 20.0)
        self.assertEqual(summary.effective_absent_days, 2.0)
        self.assertEqual(summary.effective_paid_leave_days, 1.0)
        self.assertEqual(summary.effective_ot_minutes, 130)
        self.assertEqual(summary.override_present_days, 20.0)
        self.assertIsNone(summary.override_ot_minutes)
        self.assertTrue(summary.attendance_overridden)

    def test_overtime_only_override_keeps_computed_days(self) -> None:
        override = MonthOverride(employee_id=1, year=2026, month=3, ot_minutes=45, use_override=True)

        summary = build_month_summary(employee_id=1, year=2026, month=3, computed=COMPUTED, override=override)

        self.assertEqual(summary.effective_ot_minutes, 45)
        self.assertEqual(
            (summary.effective_present_days, summary.effective_absent_days, summary.effective_paid_leave_days),
            (21.5, 2.0, 1.0),
        )
        self.assertTrue(summary.attendance_overridden)

    def test_zero_override_is_a_real_value(self) -> None:
        override = MonthOverride(employee_id=1, year=2026, month=3, ot_minutes=0, use_override=True)

        summary = build_month_summary(employee_id=1, year=2026, month=3, computed=COMPUTED, override=override)

        self.assertEqual(summary.effective_ot_minutes, 0)
        self.assertTrue(summary.attendance_overridden)

    def test_disabled_override_is_reported_but_not_applied(self) -> None:
        override = MonthOverride(
            employee_id=1,
            year=2026,
            month=3,
            present_days=20.0,
            use_override=False,
            notes="pending HR sign-off",
        )

        summary = build_month_summary(employee_id=1, year=2026, month=3, computed=COMPUTED, override=override)

        self.assertEqual(summary.effective_present_days, 21.5)
        self.assertEqual(summary.override_present_days, 20.0)
        self.assertFalse(summary.use_override)
        self.assertFalse(summary.attendance_overridden)
        self.assertEqual(summary.override_notes, "pending HR sign-off")

    def test_enabled_override_without_values_is_not_an_override(self) -> None:
        override = MonthOverride(employee_id=1, year=2026, month=3, use_override=True)

        summary = build_month_summary(employee_id=1, year=2026, month=3, computed=COMPUTED, override=override)

        self.assertTrue(summary.use_override)
        self.assertFalse(summary.attendance_overridden)
        self.assertEqual(summary.effective_present_days, 21.5)


class MonthOverrideServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = seed_company(self.db, employee_count=1)
        self.employee = self.seed.employees[0]
        generate_month(self.db, company_id=self.seed.company.id, year=2026, month=3, actor_id="system")
        manual_edit(
            self.db,
            employee_id=self.employee.id,
            day_date=date(2026, 3, 10),
            check_in="09:05",
            check_out="18:30",
            notes=None,
            status=AttendanceDayStatus.PRESENT,
            actor_id="hr_admin",
        )
        manual_edit(
            self.db,
            employee_id=self.employee.id,
            day_date=date(2026, 3, 11),
            check_in=None,
            check_out=None,
            notes=None,
            status=AttendanceDayStatus.ABSENT,
            actor_id="hr_admin",
        )
        apply_external_day(
            self.db,
            employee_id=self.employee.id,
            day_date=date(2026, 3, 12),
            source=AttendanceDaySource.LEAVE,
            leave_type_id=self.seed.paid_leave.id if self.seed.paid_leave else None,
            actor_id="leave-sync",
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_no_override_means_effective_equals_computed(self) -> None:
        summary = resolve_effective(self.db, employee_id=self.employee.id, year=2026, month=3)

        self.assertEqual(summary.computed_present_days, 1.0)
        self.assertEqual(summary.computed_absent_days, 1.0)
        self.assertEqual(summary.computed_paid_leave_days, 1.0)
        self.assertEqual(summary.computed_ot_minutes, 25)
        self.assertEqual(summary.effective_present_days, summary.computed_present_days)
        self.assertEqual(summary.effective_absent_days, summary.computed_absent_days)
        self.assertEqual(summary.effective_paid_leave_days, summary.computed_paid_leave_days)
        self.assertEqual(summary.effective_ot_minutes, summary.computed_ot_minutes)
        self.assertIsNone(summary.override_present_days)
        self.assertFalse(summary.attendance_overridden)

    def test_upsert_is_allowed_on_frozen_period_and_replaces_values(self) -> None:
        freeze_period(self.db, company_id=self.seed.company.id, year=2026, month=3, actor_id="hr_admin")

        upsert_override(
            self.db,
            employee_id=self.employee.id,
            payload=MonthOverrideUpsertRequest(year=2026, month=3, present_days=22.0, ot_minutes=90),
            updated_by="payroll_admin",
        )
        override = upsert_override(
            self.db,
            employee_id=self.employee.id,
            payload=MonthOverrideUpsertRequest(year=2026, month=3, absent_days=0.0),
            updated_by="payroll_admin",
        )
        summary = resolve_effective(self.db, employee_id=self.employee.id, year=2026, month=3)

        self.assertIsNone(override.present_days)
        self.assertEqual(override.absent_days, 0.0)
        self.assertEqual(override.updated_by, "payroll_admin")
        self.assertEqual(summary.effective_present_days, 1.0)
        self.assertEqual(summary.effective_absent_days, 0.0)
        self.assertEqual(summary.effective_ot_minutes, 25)
        self.assertTrue(summary.attendance_overridden)

    def test_clear_removes_override(self) -> None:
        upsert_override(
            self.db,
            employee_id=self.employee.id,
            payload=MonthOverrideUpsertRequest(year=2026, month=3, present_days=22.0),
            updated_by="payroll_admin",
        )

        clear_override(self.db, employee_id=self.employee.id, year=2026, month=3, cleared_by="payroll_admin")

        self.assertIsNone(get_override(self.db, employee_id=self.employee.id, year=2026, month=3))
        summary = resolve_effective(self.db, employee_id=self.employee.id, year=2026, month=3)
        self.assertEqual(summary.effective_present_days, 1.0)

    def test_clear_missing_override_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            clear_override(self.db, employee_id=self.employee.id, year=2026, month=4, cleared_by="payroll_admin")


if __name__ == "__main__":
    unittest.main()
