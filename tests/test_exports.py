from __future__ import annotations

import unittest
from datetime import date
from io import BytesIO

from openpyxl import load_workbook

from attendance_engine.models import AttendanceDayStatus
from attendance_engine.schemas import MonthOverrideUpsertRequest
from attendance_engine.services.attendance_days import manual_edit
from attendance_engine.services.exports import UNFROZEN_WARNING_TEXT, WARNING_FILL, build_reconciliation_xlsx_bytes
from attendance_engine.services.month_overrides import upsert_override
from attendance_engine.services.period_batches import generate_month
from attendance_engine.services.periods import freeze_period
from sqlite_support import new_session, seed_company


def _find_row(ws, value: str) -> int:  # type: ignore[no-untyped-def]
    for row in ws.iter_rows(min_col=1, max_col=1):
        if row[0].value == value:
            return row[0].row
    raise AssertionError(f"{value!r} not found")


class ReconciliationExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = seed_company(self.db, employee_count=2)
        self.company_id = self.seed.company.id
        generate_month(self.db, company_id=self.company_id, year=2026, month=3, actor_id="system")
        manual_edit(
            self.db,
            employee_id=self.seed.employees[0].id,
            day_date=date(2026, 3, 2),
            check_in="09:00",
            check_out="18:00",
            notes=None,
            status=AttendanceDayStatus.PRESENT,
            actor_id="hr_admin",
        )

    def tearDown(self) -> None:
        self.db.close()

    def _load(self, **kwargs):  # type: ignore[no-untyped-def]
        payload = build_reconciliation_xlsx_bytes(self.db, company_id=self.company_id, year=2026, month=3, **kwargs)
        return load_workbook(BytesIO(payload))

    def test_open_period_export_has_warning_and_register(self) -> None:
        wb = self._load()

        self.assertEqual(wb.sheetnames, ["Reconciliation", "Register"])
        ws = wb["Reconciliation"]
        self.assertEqual(ws["A1"].value, "Attendance Reconciliation 2026-03")
        warning_row = _find_row(ws, "Warning")
        self.assertEqual(ws.cell(row=warning_row, column=2).value, UNFROZEN_WARNING_TEXT)

        header_row = _find_row(ws, "Employee ID")
        self.assertEqual(ws.cell(row=header_row + 1, column=1).value, self.seed.employees[0].id)
        self.assertEqual(ws.cell(row=header_row + 1, column=4).value, 1)
        self.assertEqual(ws.cell(row=header_row + 2, column=1).value, self.seed.employees[1].id)

        register = wb["Register"]
        self.assertEqual(register["A1"].value, "Employee Code")
        self.assertEqual(register["A2"].value, "E001")
        self.assertEqual(register.cell(row=2, column=4).value, "P")

    def test_frozen_export_has_no_warning_and_highlights_overrides(self) -> None:
        freeze_period(self.db, company_id=self.company_id, year=2026, month=3, actor_id="hr_admin")
        upsert_override(
            self.db,
            employee_id=self.seed.employees[1].id,
            payload=MonthOverrideUpsertRequest(year=2026, month=3, present_days=20.0),
            updated_by="payroll_admin",
        )

        wb = self._load(include_register=False)
        ws = wb["Reconciliation"]

        self.assertEqual(wb.sheetnames, ["Reconciliation"])
        with self.assertRaises(AssertionError):
            _find_row(ws, "Warning")
        header_row = _find_row(ws, "Employee ID")
        overridden_row = header_row + 2
        self.assertEqual(ws.cell(row=overridden_row, column=12).value, 20)
        self.assertEqual(ws.cell(row=overridden_row, column=16).value, "Yes")
        self.assertEqual(
            ws.cell(row=overridden_row, column=12).fill.fgColor.rgb[-6:],
            WARNING_FILL.fgColor.rgb[-6:],
        )

        headers = [cell.value for cell in ws[header_row]]
        values = dict(zip(headers, (cell.value for cell in ws[overridden_row])))
        self.assertEqual(values["Unmarked"], 31)
        self.assertEqual(values["Suggested Payable Days"], 0)
        self.assertEqual(values["Final Payable Days"], 20)
        self.assertEqual(values["Final LOP Days"], 11)


if __name__ == "__main__":
    unittest.main()
