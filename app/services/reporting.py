from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import not_deleted
from app.errors import ApiError
from app.models import Attendance, Department, UserProfile
from app.pagination import Page, PageParams, count_rows
from app.schemas import AttendanceLogRead, AttendanceStatusRead, DashboardRead, format_hhmmss
from app.security import Principal
from app.services import attendance as attendance_service
from app.services import departments as department_service
from app.services import identity
from app.timeutils import ensure_utc, local_range_bounds_utc, to_local

logger = logging.getLogger("app.reporting")

NOT_APPLICABLE = "N/A"
ON_TIME = "On Time"
LATE = "Late"
EARLY_LEAVE = "Early Leave"

STATUS_NOT_CLOCKED = "Not Clocked"
STATUS_CLOCKED_IN = "Clocked In"
STATUS_CLOCKED_OUT = "Clocked Out"

DASHBOARD_DEFAULT_DAYS = 30


@dataclass(frozen=True, slots=True)
class LogFilter:
    day: date | None = None
    department_id: UUID | None = None


def _forbidden(message: str = "You are not allowed to access this resource.") -> ApiError:
    return ApiError(status_code=403, code="FORBIDDEN", message=message)


def _misconfigured(department_name: str | None, field_name: str) -> ApiError:
    return ApiError(
        status_code=422,
        code="MISCONFIGURED_DEPARTMENT",
        message=f"Department '{department_name or '-'}' has no {field_name} configured.",
    )


def _target_on_same_day(actual: datetime, threshold: time) -> datetime:
    local_actual = to_local(actual)
    return local_actual.replace(
        hour=threshold.hour,
        minute=threshold.minute,
        second=threshold.second,
        microsecond=0,
    )


def clock_in_punctuality(
    clock_in: datetime | None,
    max_clock_in: time | None,
    *,
    department_name: str | None = None,
) -> str:
    if clock_in is None:
        return NOT_APPLICABLE
    if max_clock_in is None:
        raise _misconfigured(department_name, "max_clock_in")
    target_in = _target_on_same_day(clock_in, max_clock_in)
    return LATE if to_local(clock_in) > target_in else ON_TIME


def clock_out_punctuality(
    clock_out: datetime | None,
    max_clock_out: time | None,
    *,
    department_name: str | None = None,
) -> str:
    if clock_out is None:
        return NOT_APPLICABLE
    if max_clock_out is None:
        raise _misconfigured(department_name, "max_clock_out")
    target_out = _target_on_same_day(clock_out, max_clock_out)
    return EARLY_LEAVE if to_local(clock_out) < target_out else ON_TIME


def _ensure_self_or_admin(principal: Principal, target_user_id: UUID) -> None:
    if target_user_id != principal.user_id and not principal.is_admin:
        raise _forbidden()


def get_attendance_logs(
    db: Session,
    principal: Principal,
    filters: LogFilter,
    params: PageParams,
) -> Page[AttendanceLogRead]:
    department_id = filters.department_id
    if not principal.is_admin:
        profile = identity.get_profile(db, principal.user_id)
        if profile is None or profile.department_id is None:
            logger.info("attendance_logs_denied", extra={"user_id": str(principal.user_id)})
            raise _forbidden("You must belong to a department to view attendance logs.")
        department_id = profile.department_id

    stmt = (
        select(
            Attendance.attendance_id,
            Attendance.employee_code,
            UserProfile.full_name,
            Department.name,
            Attendance.clock_in,
            Attendance.clock_out,
            Department.max_clock_in,
            Department.max_clock_out,
        )
        .join(UserProfile, UserProfile.employee_code == Attendance.employee_code)
        .join(Department, Department.id == UserProfile.department_id)
        .where(not_deleted(Attendance), not_deleted(UserProfile), not_deleted(Department))
    )
    if filters.day is not None:
        stmt = stmt.where(Attendance.attendance_date == filters.day)
    if department_id is not None:
        stmt = stmt.where(UserProfile.department_id == department_id)

    total = count_rows(db, stmt)
    rows = db.execute(
        stmt.order_by(Attendance.attendance_date.desc(), Attendance.clock_in.desc(), Attendance.attendance_id)
        .offset(params.offset)
        .limit(params.limit)
    ).all()

    items: list[AttendanceLogRead] = []
    for attendance_id, employee_code, full_name, department_name, clock_in, clock_out, max_in, max_out in rows:
        clock_in = ensure_utc(clock_in)
        clock_out = ensure_utc(clock_out)
        items.append(
            AttendanceLogRead(
                attendance_id=attendance_id,
                employee_code=employee_code,
                full_name=full_name,
                department_name=department_name,
                clock_in=clock_in,
                clock_out=clock_out,
                max_clock_in=format_hhmmss(max_in),
                max_clock_out=format_hhmmss(max_out),
                in_punctuality=clock_in_punctuality(clock_in, max_in, department_name=department_name),
                out_punctuality=clock_out_punctuality(clock_out, max_out, department_name=department_name),
            )
        )

    logger.info(
        "attendance_logs_listed",
        extra={
            "user_id": str(principal.user_id),
            "role": principal.role.value,
            "department_id": str(department_id) if department_id else None,
            "total": total,
        },
    )
    return Page(items=items, page=params.page, limit=params.limit, total_items=total)


def get_attendance_history(
    db: Session,
    principal: Principal,
    target_user_id: UUID,
    params: PageParams,
) -> Page[Any]:
    _ensure_self_or_admin(principal, target_user_id)
    profile = identity.get_profile_or_404(db, target_user_id)
    page = attendance_service.list_history(db, profile.employee_code, params)
    return Page(
        items=[attendance_service.to_history_read(item) for item in page.items],
        page=page.page,
        limit=page.limit,
        total_items=page.total_items,
    )


def check_current_status(db: Session, principal: Principal, target_user_id: UUID | None = None) -> AttendanceStatusRead:
    target_user_id = target_user_id or principal.user_id
    _ensure_self_or_admin(principal, target_user_id)

    profile = identity.get_profile_or_404(db, target_user_id)
    attendance = attendance_service.find_today_attendance(db, profile)

    if attendance is None:
        status = STATUS_NOT_CLOCKED
    elif attendance.clock_out is None:
        status = STATUS_CLOCKED_IN
    else:
        status = STATUS_CLOCKED_OUT

    department = profile.department
    return AttendanceStatusRead(
        user_id=profile.source_user_id,
        employee_code=profile.employee_code,
        full_name=profile.full_name,
        department=department.name if department is not None and department.deleted_at is None else None,
        status=status,
        clock_in=ensure_utc(attendance.clock_in) if attendance is not None else None,
        clock_out=ensure_utc(attendance.clock_out) if attendance is not None else None,
        updated_at=ensure_utc(attendance.updated_at) if attendance is not None else None,
    )


def get_admin_dashboard(
    db: Session,
    principal: Principal,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> DashboardRead:
    if not principal.is_admin:
        raise _forbidden("Admin role is required.")

    today = attendance_service.current_local_day()
    end_day = end_date or today
    start_day = start_date or (end_day - timedelta(days=DASHBOARD_DEFAULT_DAYS - 1))
    if start_day > end_day:
        raise ApiError(
            status_code=400,
            code="VALIDATION_ERROR",
            message="start_date must be on or before end_date.",
            errors=[{"field": "start_date", "message": "must be on or before end_date"}],
        )

    start_utc, end_utc = local_range_bounds_utc(start_day, end_day)
    dashboard = DashboardRead(
        total_employees_per_dept=identity.count_employees_per_department(db),
        total_updated_depts=department_service.count_updated_between(db, start_utc, end_utc),
        total_today_registrations=identity.count_registrations_on(db, today),
    )
    logger.info(
        "admin_dashboard_built",
        extra={"start_date": start_day.isoformat(), "end_date": end_day.isoformat()},
    )
    return dashboard
