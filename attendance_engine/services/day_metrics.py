from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from attendance_engine.models import AttendanceDayStatus, Shift

DEFAULT_MIN_HALF_DAY_MINUTES = 240
DEFAULT_MIN_FULL_DAY_MINUTES = 480

_STATUS_DEFAULT_FRACTION: dict[AttendanceDayStatus, float] = {
    AttendanceDayStatus.PRESENT: 1.0,
    AttendanceDayStatus.LEAVE: 1.0,
}


@dataclass(frozen=True)
class ShiftConfig:
    start: time
    end: time
    break_minutes: int = 0
    grace_minutes: int = 0
    ot_after_minutes: int | None = None
    min_half_day_minutes: int = DEFAULT_MIN_HALF_DAY_MINUTES
    min_full_day_minutes: int = DEFAULT_MIN_FULL_DAY_MINUTES
    is_night_shift: bool = False

    @property
    def crosses_midnight(self) -> bool:
        # is_night_shift only classifies the shift; the wall-clock span decides.
        return self.end <= self.start


@dataclass(frozen=True)
class DayMetrics:
    work_minutes: int | None
    late_minutes: int | None
    early_leave_minutes: int | None
    ot_minutes: int | None
    # None means the fraction is decided by the day status.
    day_fraction: float | None


EMPTY_METRICS = DayMetrics(
    work_minutes=None,
    late_minutes=None,
    early_leave_minutes=None,
    ot_minutes=None,
    day_fraction=None,
)


def shift_config_from_model(shift: Shift | None) -> ShiftConfig | None:
    if shift is None:
        return None
    return ShiftConfig(
        start=shift.start_time_local,
        end=shift.end_time_local,
        break_minutes=shift.break_minutes or 0,
        grace_minutes=shift.grace_minutes or 0,
        ot_after_minutes=shift.ot_after_minutes,
        min_half_day_minutes=(
            shift.min_half_day_minutes
            if shift.min_half_day_minutes is not None
            else DEFAULT_MIN_HALF_DAY_MINUTES
        ),
        min_full_day_minutes=(
            shift.min_full_day_minutes
            if shift.min_full_day_minutes is not None
            else DEFAULT_MIN_FULL_DAY_MINUTES
        ),
        is_night_shift=bool(shift.is_night_shift),
    )


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def _to_local(value: datetime, tz: tzinfo | None) -> datetime:
    if tz is None:
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def _shift_anchor_date(local_check_in: datetime, shift: ShiftConfig) -> date:
    # An after-midnight check-in on a night shift belongs to the previous day's shift.
    if shift.crosses_midnight and local_check_in.time() < shift.end:
        return local_check_in.date() - timedelta(days=1)
    return local_check_in.date()


def day_fraction_for_minutes(work_minutes: int, shift: ShiftConfig) -> float:
    if work_minutes >= max(0, shift.min_full_day_minutes):
        return 1.0
    if work_minutes >= max(0, shift.min_half_day_minutes):
        return 0.5
    return 0.0


def compute_day_metrics(
    *,
    check_in: datetime | None,
    check_out: datetime | None,
    shift: ShiftConfig | None,
    day_date: date | None = None,
    tz: tzinfo | None = None,
) -> DayMetrics:
    """Derive worked/late/early/OT minutes and the payable fraction for one day.

    Only the check-in/out pair and the shift configuration are read, so the
    result is the same no matter how often or in which order it is invoked.
    Shift-relative values are evaluated on local wall-clock time: pass ``tz``
    to convert aware timestamps first, otherwise the timestamps are taken as
    they are. ``day_date`` anchors the shift start; when omitted it is derived
    from the check-in.
    """
    if check_in is None or check_out is None:
        return EMPTY_METRICS

    local_in = _to_local(check_in, tz)
    local_out = _to_local(check_out, tz)
    span_minutes = max(0, _minutes_between(local_in, local_out))

    if shift is None:
        return DayMetrics(
            work_minutes=span_minutes,
            late_minutes=0,
            early_leave_minutes=0,
            ot_minutes=0,
            day_fraction=None,
        )

    work_minutes = max(0, span_minutes - max(0, shift.break_minutes))

    anchor = day_date if day_date is not None else _shift_anchor_date(local_in, shift)
    shift_start = datetime.combine(anchor, shift.start, tzinfo=local_in.tzinfo)
    shift_end = datetime.combine(anchor, shift.end, tzinfo=local_in.tzinfo)
    if shift.crosses_midnight:
        shift_end += timedelta(days=1)

    late_cutoff = shift_start + timedelta(minutes=max(0, shift.grace_minutes))
    late_minutes = max(0, _minutes_between(late_cutoff, local_in))

    if shift.crosses_midnight and local_out.date() != shift_end.date():
        early_leave_minutes = 0
    else:
        early_leave_minutes = max(0, _minutes_between(local_out, shift_end))

    ot_minutes = 0
    if shift.ot_after_minutes is not None:
        ot_minutes = max(0, work_minutes - max(0, shift.ot_after_minutes))

    return DayMetrics(
        work_minutes=work_minutes,
        late_minutes=late_minutes,
        early_leave_minutes=early_leave_minutes,
        ot_minutes=ot_minutes,
        day_fraction=day_fraction_for_minutes(work_minutes, shift),
    )


def resolve_day_fraction(status: AttendanceDayStatus, metrics: DayMetrics) -> float:
    if metrics.day_fraction is not None:
        return metrics.day_fraction
    return _STATUS_DEFAULT_FRACTION.get(status, 0.0)
