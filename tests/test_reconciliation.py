from __future__ import annotations

import unittest
from datetime import date

from attendance_engine.models import AttendanceDayStatus, AttendancePeriodStatus
from attendance_engine.schemas import MonthOverrideUpsertRequest
from attendance_engine.services.attendance_days import manual_edit
from attendance_engine.services.month_overrides import upsert_override
from attendance_engine.services.period_batches import generate_month
from attendance_engine.services.periods import freeze_period
from attendance_engine.services.reconciliation import build_reconciliation
from sqlite_support import new_session, seed_company


class ReconciliationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = seed_company(self.db, employee_count=2, inactive_count=1)
        self.company_id = self.seed.company.id
        self.first, self.second = self.seed.employees

    def tearDown(self) -> None:
        self.db.close()

    def _prepare_month(self) -> None:
        generate_month(self.db, company_id=self.company_id, year=2026, month=3, actor_id="system")
        for day in (2, 3, 4):
            manual_edit(
                self.db,
                employee_id=self.first.id,
                day_date=date(2026, 3, day),
                check_in="09:00",
                check_out="18:30",
                notes=None,
                status=AttendanceDayStatus.PRESENT,
                actor_id="hr_admin",
            )

    def _report(self):  # type: ignore[no-untyped-def]
        return build_reconciliation(self.db, company_id=self.company_id, year=2026, month=3)

    def test_not_generated_month_lists_active_employees_with_warning(self) -> None:
        report = self._report()

        self.assertEqual(report.period_status, AttendancePeriodStatus.NOT_GENERATED)
        self.assertEqual([row.employee_id for row in report.rows], [self.first.id, self.second.id])
        self.assertTrue(all(row.attendance_unfrozen_warning for row in report.rows))
        self.assertTrue(all(row.effective_present_days == 0 for row in report.rows))
        self.assertTrue(all(row.lop_days_suggested == 0 for row in report.rows))

    def test_open_period_rows_carry_unfrozen_warning(self) -> None:
        self._prepare_month()

        report = self._report()
        first_row = next(row for row in report.rows if row.employee_id == self.first.id)

        self.assertEqual(report.period_status, AttendancePeriodStatus.OPEN)
        self.assertTrue(first_row.attendance_unfrozen_warning)
        self.assertEqual(first_row.computed_present_days, 3.0)
        self.assertEqual(first_row.computed_ot_minutes, 3 * 30)
        self.assertEqual(first_row.employee_code, "E001")
        self.assertEqual(first_row.unmarked_days, 28.0)
        self.assertEqual(first_row.payable_days_suggested, 3.0)
        self.assertEqual(first_row.lop_days_suggested, 28.0)

    def test_frozen_period_with_override_has_no_warning(self) -> None:
        self._prepare_month()
        freeze_period(self.db, company_id=self.company_id, year=2026, month=3, actor_id="hr_admin")
        upsert_override(
            self.db,
            employee_id=self.first.id,
            payload=MonthOverrideUpsertRequest(year=2026, month=3, present_days=4.0, notes="client site visit"),
            updated_by="payroll_admin",
        )

        report = self._report()
        first_row = next(row for row in report.rows if row.employee_id == self.first.id)
        second_row = next(row for row in report.rows if row.employee_id == self.second.id)

        self.assertEqual(report.period_status, AttendancePeriodStatus.FROZEN)
        self.assertIsNotNone(report.frozen_at)
        self.assertFalse(first_row.attendance_unfrozen_warning)
        self.assertEqual(first_row.period_status, AttendancePeriodStatus.FROZEN)
        self.assertEqual(first_row.computed_present_days, 3.0)
        self.assertEqual(first_row.effective_present_days, 4.0)
        self.assertEqual(first_row.effective_ot_minutes, 90)
        self.assertTrue(first_row.attendance_overridden)
        self.assertEqual(first_row.override_notes, "client site visit")
        self.assertEqual(first_row.payable_days_suggested, 3.0)
        self.assertEqual(first_row.payable_days_effective, 4.0)
        self.assertEqual(first_row.lop_days_effective, 27.0)
        self.assertFalse(second_row.attendance_overridden)

    def test_employee_filter_limits_rows(self) -> None:
        self._prepare_month()

        report = build_reconciliation(
            self.db,
            company_id=self.company_id,
            year=2026,
            month=3,
            employee_ids=[self.second.id],
        )

        self.assertEqual([row.employee_id for row in report.rows], [self.second.id])


if __name__ == "__main__":
    unittest.main()
