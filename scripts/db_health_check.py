#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0002_attendance_periods"


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        required = ["attendance_periods", "attendance_days", "month_overrides"]
        missing = [table for table in required if table not in tables]
        add("missing_attendance_tables", "fail" if missing else "ok", {"missing": missing})
        if missing:
            return report

        days_without_period = conn.execute(
            text(
                """
                select d.company_id,
                       extract(year from d.day_date)::int as year,
                       extract(month from d.day_date)::int as month,
                       count(*)
                from attendance_days d
                left join attendance_periods p
                  on p.company_id = d.company_id
                 and p.year = extract(year from d.day_date)::int
                 and p.month = extract(month from d.day_date)::int
                where p.id is null
                group by 1, 2, 3
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_days_without_period",
            "fail" if days_without_period else "ok",
            {"rows": [list(row) for row in days_without_period]},
        )

        edited_after_freeze = conn.execute(
            text(
                """
                select d.id, d.employee_id, d.day_date, d.updated_at, p.frozen_at
                from attendance_days d
                join attendance_periods p
                  on p.company_id = d.company_id
                 and p.year = extract(year from d.day_date)::int
                 and p.month = extract(month from d.day_date)::int
                where p.status = 'frozen'
                  and d.updated_at > p.frozen_at
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_days_edited_after_freeze",
            "fail" if edited_after_freeze else "ok",
            {"sample": [[str(item) for item in row] for row in edited_after_freeze]},
        )

        immutable_manual_mismatch = conn.execute(
            text(
                """
                select id, employee_id, day_date, status, source
                from attendance_days
                where (source = 'leave' and status <> 'leave')
                   or (source = 'holiday_calendar' and status <> 'holiday')
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_source_status_mismatch",
            "fail" if immutable_manual_mismatch else "ok",
            {"sample": [[str(item) for item in row] for row in immutable_manual_mismatch]},
        )

        orphan_overrides = conn.execute(
            text(
                """
                select o.id
                from month_overrides o
                left join employees e on e.id = o.employee_id
                where e.id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "month_override_orphan_employee",
            "fail" if orphan_overrides else "ok",
            {"sample_ids": [row[0] for row in orphan_overrides]},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
