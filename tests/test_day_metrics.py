from datetime import date, datetime, time, timezone
import unittest
from zoneinfo import ZoneInfo

from attendance_engine.models import AttendanceDayStatus
from attendance_engine.services.day_metrics import (
    EMPTY_METRICS,
    ShiftConfig,
    compute_day_metrics,
    resolve_day_fraction,
)

GENERAL = ShiftConfig(
    start=time(9, 0),
    end=time(18, 0),
    break_minutes=60,
    grace_minutes=10,
    ot_after_minutes=480,
    min_half_day_minutes=240,
    min_full_day_minutes=480,
)

NIGHT = ShiftConfig(
    start=time(22, 0),
    end=time(6, 0),
    break_minutes=30,
    grace_minutes=0,
    is_night_shift=True,
)


class DayMetricsTests(unittest.TestCase):
    def test_full_day_within_grace_with_overtime(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 5),
            check_out=datetime(2026, 3, 10, 18, 30),
            shift=GENERAL,
        )

        self.assertEqual(metrics.work_minutes, 505)
        self.assertEqual(metrics.late_minutes, 0)
        self.assertEqual(metrics.early_leave_minutes, 0)
        self.assertEqual(metrics.ot_minutes, 25)
        self.assertEqual(metrics.day_fraction, 1.0)

    def test_late_short_day_is_below_half_day(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 20),
            check_out=datetime(2026, 3, 10, 13, 0),
            shift=GENERAL,
        )

        self.assertEqual(metrics.work_minutes, 160)
        self.assertEqual(metrics.late_minutes, 10)
        self.assertEqual(metrics.early_leave_minutes, 300)
        self.assertEqual(metrics.ot_minutes, 0)
        self.assertEqual(metrics.day_fraction, 0.0)

    def test_half_day_threshold_is_inclusive(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 0),
            check_out=datetime(2026, 3, 10, 14, 0),
            shift=GENERAL,
        )

        self.assertEqual(metrics.work_minutes, 240)
        self.assertEqual(metrics.day_fraction, 0.5)

    def test_break_longer_than_span_clamps_to_zero(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 0),
            check_out=datetime(2026, 3, 10, 9, 30),
            shift=GENERAL,
        )

        self.assertEqual(metrics.work_minutes, 0)
        self.assertEqual(metrics.day_fraction, 0.0)

    def test_missing_timestamp_leaves_metrics_empty(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 0),
            check_out=None,
            shift=GENERAL,
        )

        self.assertEqual(metrics, EMPTY_METRICS)
        self.assertEqual(resolve_day_fraction(AttendanceDayStatus.PRESENT, metrics), 1.0)
        self.assertEqual(resolve_day_fraction(AttendanceDayStatus.ABSENT, metrics), 0.0)

    def test_without_shift_only_span_is_reported(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 9, 0),
            check_out=datetime(2026, 3, 10, 17, 15),
            shift=None,
        )

        self.assertEqual(metrics.work_minutes, 495)
        self.assertEqual(metrics.late_minutes, 0)
        self.assertEqual(metrics.early_leave_minutes, 0)
        self.assertEqual(metrics.ot_minutes, 0)
        self.assertIsNone(metrics.day_fraction)
        self.assertEqual(resolve_day_fraction(AttendanceDayStatus.PRESENT, metrics), 1.0)

    def test_no_overtime_when_threshold_unset(self) -> None:
        shift = ShiftConfig(start=time(9, 0), end=time(18, 0), break_minutes=60)

        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 8, 0),
            check_out=datetime(2026, 3, 10, 21, 0),
            shift=shift,
        )

        self.assertEqual(metrics.work_minutes, 720)
        self.assertEqual(metrics.ot_minutes, 0)

    def test_night_shift_ends_on_next_day(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 22, 15),
            check_out=datetime(2026, 3, 11, 6, 0),
            shift=NIGHT,
            day_date=date(2026, 3, 10),
        )

        self.assertEqual(metrics.work_minutes, 435)
        self.assertEqual(metrics.late_minutes, 15)
        self.assertEqual(metrics.early_leave_minutes, 0)
        self.assertEqual(metrics.day_fraction, 0.5)

    def test_night_shift_early_leave_counts_against_next_day_end(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 22, 0),
            check_out=datetime(2026, 3, 11, 5, 0),
            shift=NIGHT,
            day_date=date(2026, 3, 10),
        )

        self.assertEqual(metrics.early_leave_minutes, 60)

    def test_after_midnight_check_in_anchors_to_previous_day(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 11, 0, 30),
            check_out=datetime(2026, 3, 11, 6, 0),
            shift=NIGHT,
        )

        self.assertEqual(metrics.late_minutes, 150)
        self.assertEqual(metrics.early_leave_minutes, 0)

    def test_flagged_night_shift_ending_same_day_counts_early_leave(self) -> None:
        evening = ShiftConfig(start=time(14, 0), end=time(22, 0), is_night_shift=True)

        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 14, 0),
            check_out=datetime(2026, 3, 10, 20, 0),
            shift=evening,
        )

        self.assertFalse(evening.crosses_midnight)
        self.assertEqual(metrics.work_minutes, 360)
        self.assertEqual(metrics.late_minutes, 0)
        self.assertEqual(metrics.early_leave_minutes, 120)

    def test_utc_timestamps_are_evaluated_in_local_time(self) -> None:
        metrics = compute_day_metrics(
            check_in=datetime(2026, 3, 10, 3, 35, tzinfo=timezone.utc),
            check_out=datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc),
            shift=GENERAL,
            day_date=date(2026, 3, 10),
            tz=ZoneInfo("Asia/Kolkata"),
        )

        self.assertEqual(metrics.work_minutes, 505)
        self.assertEqual(metrics.late_minutes, 0)
        self.assertEqual(metrics.ot_minutes, 25)

    def test_repeated_calls_give_identical_results(self) -> None:
        kwargs = {
            "check_in": datetime(2026, 3, 10, 9, 20),
            "check_out": datetime(2026, 3, 10, 13, 0),
            "shift": GENERAL,
        }

        self.assertEqual(compute_day_metrics(**kwargs), compute_day_metrics(**kwargs))


if __name__ == "__main__":
    unittest.main()
