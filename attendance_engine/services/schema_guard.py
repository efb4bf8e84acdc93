from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine, Inspector
from sqlalchemy.exc import SQLAlchemyError

from attendance_engine.db import Base
from attendance_engine.models import (
    AttendanceDaySource,
    AttendanceDayStatus,
    AttendancePeriodStatus,
    WeeklyOffScope,
)

# Tables the engine writes; every mapped column must exist at runtime.
ENGINE_TABLES = ("attendance_periods", "attendance_days", "month_overrides", "audit_logs")

# Reference tables only need the columns the engine reads.
REFERENCE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "company_id", "location_id", "is_active"},
    "shifts": {
        "id",
        "start_time_local",
        "end_time_local",
        "break_minutes",
        "grace_minutes",
        "ot_after_minutes",
        "is_night_shift",
    },
    "weekly_off_rules": {"id", "scope_type", "weekday", "week_of_month", "is_off"},
    "leave_types": {"id", "is_paid"},
    "alembic_version": {"version_num"},
}


def _mapped_columns(table_name: str) -> set[str]:
    return {column.name for column in Base.metadata.tables[table_name].columns}


def _enum_labels(enum_cls: type[enum.Enum]) -> set[str]:
    return {str(member.value) for member in enum_cls}


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    **{name: _mapped_columns(name) for name in ENGINE_TABLES},
    **REFERENCE_COLUMNS,
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "attendance_day_status": _enum_labels(AttendanceDayStatus),
    "attendance_day_source": _enum_labels(AttendanceDaySource),
    "attendance_period_status": _enum_labels(AttendancePeriodStatus),
    "weekly_off_scope": _enum_labels(WeeklyOffScope),
}


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def _check_columns(inspector: Inspector, issues: list[str]) -> None:
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")


def _check_enums(engine: Engine, inspector: Inspector, issues: list[str], warnings: list[str]) -> None:
    # Only PostgreSQL has named enum types; elsewhere they are plain strings.
    if engine.dialect.name != "postgresql":
        warnings.extend(f"ENUM_NOT_FOUND:{name}" for name in REQUIRED_ENUM_VALUES)
        return
    try:
        reported = list(inspector.get_enums() or [])
    except SQLAlchemyError as exc:
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return

    labels_by_name = {
        str(item.get("name")): {str(label) for label in item.get("labels") or []}
        for item in reported
        if item.get("name")
    }
    for enum_name, required in REQUIRED_ENUM_VALUES.items():
        if enum_name not in labels_by_name:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required - labels_by_name[enum_name])
        if missing:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")


def _check_alembic_version(engine: Engine, issues: list[str]) -> None:
    try:
        with engine.connect() as connection:
            version = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return
    if not str(version or "").strip():
        issues.append("ALEMBIC_VERSION_EMPTY")


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Compare the live database with what the attendance engine expects.

    Missing columns, missing enum labels and an empty alembic version are
    issues; enum types that cannot be inspected are only warnings.
    """
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    _check_columns(inspector, issues)
    _check_enums(engine, inspector, issues, warnings)
    _check_alembic_version(engine, issues)

    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
