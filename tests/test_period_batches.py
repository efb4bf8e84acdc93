from __future__ import annotations

import unittest
from datetime import date
from unittest.mock import patch

from sqlalchemy import select

from attendance_engine.errors import ValidationFailedError
from attendance_engine.models import AttendanceDay, AttendanceDaySource, AttendanceDayStatus, Shift
from attendance_engine.services import period_batches
from attendance_engine.services.attendance_days import apply_external_day, manual_edit
from attendance_engine.services.period_batches import generate_month, mark_weekdays_present, recompute_month
from sqlite_support import new_session, seed_company


def _seed_month(db):  # type: ignore[no-untyped-def]
    seed = seed_company(db, employee_count=2, sunday_off=True)
    generate_month(db, company_id=seed.company.id, year=2026, month=3, actor_id="system")
    for employee, check_out in zip(seed.employees, ("18:30", "19:00")):
        manual_edit(
            db,
            employee_id=employee.id,
            day_date=date(2026, 3, 10),
            check_in="09:05",
            check_out=check_out,
            notes=None,
            status=AttendanceDayStatus.PRESENT,
            actor_id="hr_admin",
        )
    return seed


def _snapshot(db) -> list[tuple]:  # type: ignore[no-untyped-def]
    rows = db.scalars(select(AttendanceDay).order_by(AttendanceDay.employee_id, AttendanceDay.day_date)).all()
    return [
        (
            row.employee_id,
            row.day_date,
            row.status,
            row.shift_id,
            row.work_minutes,
            row.late_minutes,
            row.early_leave_minutes,
            row.ot_minutes,
            row.day_fraction,
        )
        for row in rows
    ]


def _change_overtime_threshold(db, shift_id: int) -> None:  # type: ignore[no-untyped-def]
    shift = db.get(Shift, shift_id)
    shift.ot_after_minutes = 450
    db.commit()


class BatchSummaryLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = seed_company(self.db, employee_count=1)

    def tearDown(self) -> None:
        self.db.close()

    def _summary(self, captured, operation: str):  # type: ignore[no-untyped-def]
        return next(record for record in captured.records if record.getMessage() == f"{operation}_complete")

    def test_generate_returns_counts_with_info_logging_enabled(self) -> None:
        with self.assertLogs("attendance_engine.periods", level="INFO") as captured:
            _, result = generate_month(self.db, company_id=self.seed.company.id, year=2026, month=3, actor_id="hr")

        self.assertEqual(result.created, 31)
        summary = self._summary(captured, "attendance_generate")
        self.assertEqual(summary.rows_created, 31)
        self.assertEqual(summary.failed, 0)

    def test_recompute_and_mark_return_counts_with_info_logging_enabled(self) -> None:
        company_id = self.seed.company.id
        generate_month(self.db, company_id=company_id, year=2026, month=3, actor_id="hr")

        with self.assertLogs("attendance_engine.periods", level="INFO") as captured:
            recomputed = recompute_month(self.db, company_id=company_id, year=2026, month=3)
            marked = mark_weekdays_present(
                self.db,
                company_id=company_id,
                year=2026,
                month=3,
                employee_ids=[self.seed.employees[0].id],
                actor_id="hr",
            )

        self.assertEqual(recomputed.skipped, 31)
        self.assertEqual(marked.updated, 22)
        self.assertEqual(self._summary(captured, "attendance_mark_weekdays").updated, 22)


class RecomputeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = _seed_month(self.db)
        self.company_id = self.seed.company.id

    def tearDown(self) -> None:
        self.db.close()

    def test_recompute_without_changes_updates_nothing(self) -> None:
        before = _snapshot(self.db)

        result = recompute_month(self.db, company_id=self.company_id, year=2026, month=3)

        self.assertEqual(result.updated, 0)
        self.assertEqual(result.skipped, 62)
        self.assertEqual(_snapshot(self.db), before)

    def test_recompute_picks_up_shift_changes_once(self) -> None:
        _change_overtime_threshold(self.db, self.seed.shift.id)

        first = recompute_month(self.db, company_id=self.company_id, year=2026, month=3)
        second = recompute_month(self.db, company_id=self.company_id, year=2026, month=3)

        row = self.db.scalar(
            select(AttendanceDay).where(
                AttendanceDay.employee_id == self.seed.employees[0].id,
                AttendanceDay.day_date == date(2026, 3, 10),
            )
        )
        assert row is not None
        self.assertEqual(first.updated, 2)
        self.assertEqual(second.updated, 0)
        self.assertEqual(row.ot_minutes, 55)
        self.assertEqual(row.status, AttendanceDayStatus.PRESENT)
        self.assertEqual(row.source, AttendanceDaySource.MANUAL)

    def test_subset_then_full_matches_full(self) -> None:
        other_db = new_session()
        try:
            other_seed = _seed_month(other_db)
            _change_overtime_threshold(self.db, self.seed.shift.id)
            _change_overtime_threshold(other_db, other_seed.shift.id)

            recompute_month(
                self.db,
                company_id=self.company_id,
                year=2026,
                month=3,
                employee_ids=[self.seed.employees[0].id],
            )
            recompute_month(self.db, company_id=self.company_id, year=2026, month=3)
            recompute_month(other_db, company_id=other_seed.company.id, year=2026, month=3)

            self.assertEqual(_snapshot(self.db), _snapshot(other_db))
        finally:
            other_db.close()

    def test_unknown_employee_ids_are_rejected(self) -> None:
        with self.assertRaises(ValidationFailedError):
            recompute_month(self.db, company_id=self.company_id, year=2026, month=3, employee_ids=[999])

    def test_failed_chunk_is_reported_and_others_commit(self) -> None:
        _change_overtime_threshold(self.db, self.seed.shift.id)
        failing_id = self.seed.employees[0].id
        real_apply = period_batches.apply_day_metrics

        def _apply(day, shift, *, tz=None):  # type: ignore[no-untyped-def]
            if day.employee_id == failing_id:
                raise RuntimeError("shift lookup failed")
            return real_apply(day, shift, tz=tz)

        with (
            patch("attendance_engine.services.period_batches.get_batch_chunk_size", return_value=1),
            patch("attendance_engine.services.period_batches.get_batch_chunk_retries", return_value=1),
            patch("attendance_engine.services.period_batches.apply_day_metrics", side_effect=_apply),
        ):
            result = recompute_month(self.db, company_id=self.company_id, year=2026, month=3)

        self.assertEqual(result.failed, 1)
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].employee_ids, [failing_id])
        self.assertEqual(result.failures[0].error, "shift lookup failed")
        self.assertEqual(result.updated, 1)

        rows = {
            row.employee_id: row
            for row in self.db.scalars(
                select(AttendanceDay).where(AttendanceDay.day_date == date(2026, 3, 10))
            ).all()
        }
        self.assertEqual(rows[self.seed.employees[1].id].ot_minutes, 85)
        self.assertEqual(rows[failing_id].ot_minutes, 25)
        self.assertEqual(result.to_read().failures[0].employee_ids, [failing_id])


class MarkWeekdaysPresentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = new_session()
        self.seed = seed_company(self.db, employee_count=1, sunday_off=True)
        self.company_id = self.seed.company.id
        self.employee = self.seed.employees[0]
        generate_month(self.db, company_id=self.company_id, year=2026, month=3, actor_id="system")

    def tearDown(self) -> None:
        self.db.close()

    def _rows(self) -> dict[date, AttendanceDay]:
        return {
            row.day_date: row
            for row in self.db.scalars(
                select(AttendanceDay).where(AttendanceDay.employee_id == self.employee.id)
            ).all()
        }

    def test_only_unmarked_weekdays_become_present(self) -> None:
        apply_external_day(
            self.db,
            employee_id=self.employee.id,
            day_date=date(2026, 3, 11),
            source=AttendanceDaySource.LEAVE,
            actor_id="leave-sync",
        )

        result = mark_weekdays_present(
            self.db,
            company_id=self.company_id,
            year=2026,
            month=3,
            employee_ids=[self.employee.id],
            actor_id="hr_admin",
        )
        rows = self._rows()

        self.assertEqual(result.updated, 21)
        self.assertEqual(result.skipped, 10)
        self.assertEqual(rows[date(2026, 3, 10)].status, AttendanceDayStatus.PRESENT)
        self.assertEqual(rows[date(2026, 3, 10)].source, AttendanceDaySource.MANUAL)
        self.assertEqual(rows[date(2026, 3, 10)].day_fraction, 1.0)
        self.assertEqual(rows[date(2026, 3, 11)].status, AttendanceDayStatus.LEAVE)
        self.assertEqual(rows[date(2026, 3, 14)].status, AttendanceDayStatus.UNMARKED)
        self.assertEqual(rows[date(2026, 3, 15)].status, AttendanceDayStatus.WEEKLY_OFF)

    def test_second_run_changes_nothing(self) -> None:
        kwargs = {
            "company_id": self.company_id,
            "year": 2026,
            "month": 3,
            "employee_ids": [self.employee.id],
            "actor_id": "hr_admin",
        }
        mark_weekdays_present(self.db, **kwargs)

        result = mark_weekdays_present(self.db, **kwargs)

        self.assertEqual(result.updated, 0)
        self.assertEqual(result.skipped, 31)


if __name__ == "__main__":
    unittest.main()
