#!/usr/bin/env python
"""Release gate for the attendance engine.

Checks the migration graph, the runtime settings and, when DATABASE_URL is
exported, the target database. Prints a JSON report and exits non-zero when
any check fails.
"""
from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attendance_engine.services.schema_guard import verify_runtime_schema
from attendance_engine.settings import get_settings

# alembic_version.version_num is VARCHAR(32).
MAX_REVISION_LENGTH = 32


@dataclass(slots=True)
class GateCheck:
    name: str
    status: str = "ok"
    details: dict[str, Any] = field(default_factory=dict)

    def fail_if(self, condition: bool) -> None:
        if condition:
            self.status = "fail"


def _script_directory() -> ScriptDirectory:
    config = Config(str(ROOT_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT_DIR / "attendance_engine" / "migrations"))
    return ScriptDirectory.from_config(config)


def check_migration_graph(script: ScriptDirectory) -> GateCheck:
    revisions = list(script.walk_revisions())
    heads = sorted(script.get_heads())
    overlong = sorted(rev.revision for rev in revisions if len(rev.revision) > MAX_REVISION_LENGTH)

    check = GateCheck(
        name="migration_graph",
        details={
            "revision_count": len(revisions),
            "heads": heads,
            "overlong_revisions": overlong,
        },
    )
    check.fail_if(len(heads) != 1 or bool(overlong))
    return check


def check_runtime_settings() -> GateCheck:
    settings = get_settings()
    try:
        ZoneInfo(settings.attendance_timezone)
        timezone_ok = True
    except ZoneInfoNotFoundError:
        timezone_ok = False

    check = GateCheck(
        name="runtime_settings",
        details={
            "jwt_secret_set": bool(settings.jwt_secret.strip()),
            "attendance_timezone": settings.attendance_timezone,
            "attendance_timezone_valid": timezone_ok,
            "batch_chunk_size": settings.batch_chunk_size,
            "batch_chunk_retries": settings.batch_chunk_retries,
        },
    )
    check.fail_if(
        not check.details["jwt_secret_set"]
        or not timezone_ok
        or settings.batch_chunk_size < 1
        or settings.batch_chunk_retries < 0
    )
    return check


def check_target_database(expected_heads: list[str]) -> GateCheck:
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        return GateCheck(name="target_database", status="warn", details={"reason": "DATABASE_URL_NOT_SET"})

    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        with engine.connect() as connection:
            applied = sorted(
                str(value).strip()
                for value in connection.execute(text("SELECT version_num FROM alembic_version")).scalars()
                if value is not None
            )
        guard = verify_runtime_schema(engine)
    finally:
        engine.dispose()

    pending = [head for head in expected_heads if head not in applied]
    check = GateCheck(
        name="target_database",
        details={
            "applied_revisions": applied,
            "pending_heads": pending,
            "schema_guard": guard.to_dict(),
        },
    )
    check.fail_if(bool(pending) or not guard.ok)
    return check


def main() -> int:
    script = _script_directory()
    checks = [
        check_migration_graph(script),
        check_runtime_settings(),
        check_target_database(sorted(script.get_heads())),
    ]
    ok = all(check.status != "fail" for check in checks)
    report = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "ok": ok,
        "checks": [asdict(check) for check in checks],
    }
    print(json.dumps(report, ensure_ascii=False, indent=2, default=str))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
