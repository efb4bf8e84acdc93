from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.models import Employee, EmployeeShiftAssignment, LocationShift, Shift


def _is_effective(effective_from: date | None, effective_to: date | None, day_date: date) -> bool:
    if effective_from is not None and day_date < effective_from:
        return False
    if effective_to is not None and day_date > effective_to:
        return False
    return True


def _usable(shift: Shift | None) -> bool:
    return shift is not None and bool(shift.is_active)


def pick_employee_assignment(
    assignments: Iterable[EmployeeShiftAssignment],
    *,
    day_date: date,
) -> Shift | None:
    applicable = [
        item
        for item in assignments
        if _is_effective(item.effective_from, item.effective_to, day_date) and _usable(item.shift)
    ]
    if not applicable:
        return None
    applicable.sort(key=lambda item: (item.effective_from.toordinal(), item.id), reverse=True)
    return applicable[0].shift


def pick_location_shift(
    mappings: Iterable[LocationShift],
    *,
    day_date: date,
) -> Shift | None:
    applicable = [
        item
        for item in mappings
        if _is_effective(item.effective_from, item.effective_to, day_date) and _usable(item.shift)
    ]
    if not applicable:
        return None
    applicable.sort(
        key=lambda item: (bool(item.is_default), item.effective_from.toordinal(), item.id),
        reverse=True,
    )
    return applicable[0].shift


class ShiftResolver:
    """Resolve the shift for (employee, day) with the lookups preloaded once.

    Employee assignments take precedence over the location's default mapping.
    Both are effective-dated; among several matches the latest
    ``effective_from`` wins, and for locations a default mapping beats a
    non-default one.
    """

    def __init__(
        self,
        db: Session,
        *,
        employees: Iterable[Employee],
        start_date: date,
        end_date: date,
    ) -> None:
        employee_list = list(employees)
        employee_ids = {employee.id for employee in employee_list}
        self._location_by_employee = {employee.id: employee.location_id for employee in employee_list}
        location_ids = {item for item in self._location_by_employee.values() if item is not None}

        self._assignments: dict[int, list[EmployeeShiftAssignment]] = defaultdict(list)
        if employee_ids:
            rows = db.scalars(
                select(EmployeeShiftAssignment)
                .options(selectinload(EmployeeShiftAssignment.shift))
                .where(
                    EmployeeShiftAssignment.employee_id.in_(employee_ids),
                    EmployeeShiftAssignment.effective_from <= end_date,
                    (EmployeeShiftAssignment.effective_to.is_(None))
                    | (EmployeeShiftAssignment.effective_to >= start_date),
                )
                .order_by(EmployeeShiftAssignment.id.asc())
            ).all()
            for row in rows:
                self._assignments[row.employee_id].append(row)

        self._location_mappings: dict[int, list[LocationShift]] = defaultdict(list)
        if location_ids:
            rows = db.scalars(
                select(LocationShift)
                .options(selectinload(LocationShift.shift))
                .where(
                    LocationShift.location_id.in_(location_ids),
                    LocationShift.effective_from <= end_date,
                    (LocationShift.effective_to.is_(None)) | (LocationShift.effective_to >= start_date),
                )
                .order_by(LocationShift.id.asc())
            ).all()
            for row in rows:
                self._location_mappings[row.location_id].append(row)

    def resolve(self, employee_id: int, day_date: date) -> Shift | None:
        shift = pick_employee_assignment(self._assignments.get(employee_id, []), day_date=day_date)
        if shift is not None:
            return shift
        location_id = self._location_by_employee.get(employee_id)
        if location_id is None:
            return None
        return pick_location_shift(self._location_mappings.get(location_id, []), day_date=day_date)


def resolve_shift(db: Session, *, employee: Employee, day_date: date) -> Shift | None:
    resolver = ShiftResolver(db, employees=[employee], start_date=day_date, end_date=day_date)
    return resolver.resolve(employee.id, day_date)
