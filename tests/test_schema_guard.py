from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from attendance_engine.services.schema_guard import (
    REQUIRED_ENUM_VALUES,
    REQUIRED_TABLE_COLUMNS,
    SchemaGuardResult,
    verify_runtime_schema,
)


def _complete_columns() -> dict[str, set[str]]:
    return {table: set(columns) for table, columns in REQUIRED_TABLE_COLUMNS.items()}


def _complete_enums() -> list[dict[str, object]]:
    return [{"name": name, "labels": sorted(labels)} for name, labels in REQUIRED_ENUM_VALUES.items()]


def _run(
    *,
    columns: dict[str, set[str]] | None = None,
    enums: list[dict[str, object]] | None = None,
    version: str | None = "0002_attendance_periods",
    dialect: str = "postgresql",
) -> SchemaGuardResult:
    present = columns if columns is not None else _complete_columns()
    inspector = MagicMock()
    inspector.get_columns.side_effect = lambda table: [{"name": name} for name in present[table]]
    inspector.get_enums.return_value = enums if enums is not None else _complete_enums()

    engine = MagicMock()
    engine.dialect.name = dialect
    connection = engine.connect.return_value.__enter__.return_value
    connection.execute.return_value.scalar.return_value = version

    with patch("attendance_engine.services.schema_guard.inspect", return_value=inspector):
        return verify_runtime_schema(engine)


class SchemaGuardTests(unittest.TestCase):
    def test_complete_schema_passes(self) -> None:
        result = _run()

        self.assertTrue(result.ok)
        self.assertEqual((result.issues, result.warnings), ([], []))

    def test_missing_attendance_day_columns_are_listed(self) -> None:
        columns = _complete_columns()
        columns["attendance_days"] = {"id", "employee_id", "day_date", "status"}
        expected_missing = sorted(REQUIRED_TABLE_COLUMNS["attendance_days"] - columns["attendance_days"])

        result = _run(columns=columns)

        self.assertFalse(result.ok)
        self.assertIn("source", expected_missing)
        self.assertIn("day_fraction", expected_missing)
        self.assertEqual(result.issues, [f"MISSING_COLUMNS:attendance_days:{','.join(expected_missing)}"])

    def test_engine_tables_require_every_mapped_column(self) -> None:
        self.assertIn("check_out_at", REQUIRED_TABLE_COLUMNS["attendance_days"])
        self.assertIn("use_override", REQUIRED_TABLE_COLUMNS["month_overrides"])
        self.assertEqual(
            REQUIRED_ENUM_VALUES["attendance_period_status"],
            {"not_generated", "open", "frozen"},
        )

    def test_period_status_enum_without_frozen_is_an_issue(self) -> None:
        enums = _complete_enums()
        for item in enums:
            if item["name"] == "attendance_period_status":
                item["labels"] = ["not_generated", "open"]

        result = _run(enums=enums)

        self.assertFalse(result.ok)
        self.assertIn("MISSING_ENUM_VALUES:attendance_period_status:frozen", result.issues)

    def test_sqlite_only_warns_about_enums(self) -> None:
        result = _run(enums=[], dialect="sqlite")

        self.assertTrue(result.ok)
        self.assertIn("ENUM_NOT_FOUND:attendance_day_status", result.warnings)

    def test_empty_alembic_version_fails(self) -> None:
        result = _run(version=None)

        self.assertFalse(result.ok)
        self.assertEqual(result.issues, ["ALEMBIC_VERSION_EMPTY"])
        self.assertEqual(result.to_dict()["issue_count"], 1)


if __name__ == "__main__":
    unittest.main()
