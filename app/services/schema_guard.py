from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


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


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "status", "deleted_at"},
    "credentials": {"source_user_id", "password_hash"},
    "user_profiles": {"source_user_id", "employee_code", "department_id"},
    "application_roles": {"source_user_id", "role"},
    "refresh_sessions": {"source_user_id", "device_id", "token_hash", "expires_at", "revoked_at"},
    "departments": {"id", "name", "max_clock_in", "max_clock_out", "deleted_at"},
    "attendances": {"attendance_id", "employee_code", "attendance_date", "clock_in", "clock_out"},
    "attendance_histories": {"attendance_id", "attendance_type", "date_attendance"},
}

# Constraints that linearize clock-in and refresh rotation.
REQUIRED_UNIQUE_COLUMNS: dict[str, list[set[str]]] = {
    "attendances": [{"attendance_id"}],
    "refresh_sessions": [{"source_user_id", "device_id"}],
    "users": [{"email"}],
    "user_profiles": [{"employee_code"}, {"source_user_id"}],
}


def _unique_column_sets(inspector: Any, table_name: str) -> list[set[str]]:
    column_sets: list[set[str]] = []
    for constraint in inspector.get_unique_constraints(table_name):
        column_sets.append({str(item) for item in constraint.get("column_names") or []})
    for index in inspector.get_indexes(table_name):
        if index.get("unique"):
            column_sets.append({str(item) for item in index.get("column_names") or []})
    return column_sets


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)

    try:
        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())
    except SQLAlchemyError as exc:
        return SchemaGuardResult(
            ok=False,
            checked_at_utc=checked_at_utc,
            issues=[f"DATABASE_UNREACHABLE:{exc.__class__.__name__}"],
        )

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        if table_name not in table_names:
            issues.append(f"MISSING_TABLE:{table_name}")
            continue
        column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, required_sets in REQUIRED_UNIQUE_COLUMNS.items():
        if table_name not in table_names:
            continue
        present = _unique_column_sets(inspector, table_name)
        for required in required_sets:
            if required not in present:
                issues.append(f"MISSING_UNIQUE:{table_name}:{','.join(sorted(required))}")

    if "alembic_version" not in table_names:
        warnings.append("ALEMBIC_VERSION_TABLE_MISSING")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
