#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, inspect, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.settings import get_settings

EXPECTED_HEAD = "0001_initial"

# Each query returns offending rows; an empty result means the invariant holds.
INVARIANT_QUERIES: dict[str, str] = {
    "duplicate_attendance_per_day": """
        select employee_code, attendance_date, count(*)
        from attendances
        where deleted_at is null
        group by employee_code, attendance_date
        having count(*) > 1
    """,
    "attendance_clock_out_before_clock_in": """
        select attendance_id
        from attendances
        where clock_out is not null and clock_in is not null and clock_out < clock_in
        limit 20
    """,
    "attendance_missing_clock_in_history": """
        select a.attendance_id
        from attendances a
        left join attendance_histories h
            on h.attendance_id = a.attendance_id and h.attendance_type = 'in'
        where a.clock_in is not null and h.id is null
        limit 20
    """,
    "attendance_missing_clock_out_history": """
        select a.attendance_id
        from attendances a
        left join attendance_histories h
            on h.attendance_id = a.attendance_id and h.attendance_type = 'out'
        where a.clock_out is not null and h.id is null
        limit 20
    """,
    "duplicate_refresh_session_per_device": """
        select source_user_id, device_id, count(*)
        from refresh_sessions
        group by source_user_id, device_id
        having count(*) > 1
    """,
    "admin_with_department": """
        select p.source_user_id
        from user_profiles p
        join application_roles r on r.source_user_id = p.source_user_id
        where r.role = 'admin' and p.department_id is not null
        limit 20
    """,
}


def run(database_url: str | None = None) -> dict[str, Any]:
    engine = create_engine(database_url or get_settings().database_url)
    report: dict[str, Any] = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict[str, Any]) -> None:
        report["checks"].append({"name": name, "status": status, "details": details})

    tables = set(inspect(engine).get_table_names())
    with engine.connect() as conn:
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

        for name, query in INVARIANT_QUERIES.items():
            rows = conn.execute(text(query)).fetchall()
            add(name, "fail" if rows else "ok", {"rows": [[str(item) for item in row] for row in rows]})

    report["ok"] = all(check["status"] != "fail" for check in report["checks"])
    return report


if __name__ == "__main__":
    result = run()
    print(json.dumps(result, ensure_ascii=False, indent=2))
    sys.exit(0 if result["ok"] else 1)
