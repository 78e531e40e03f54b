from __future__ import annotations

from datetime import date, datetime, timezone
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import not_deleted
from app.errors import ApiError, internal_error
from app.models import Attendance, AttendanceHistory, AttendanceType, UserProfile
from app.pagination import Page, PageParams, count_rows
from app.schemas import AttendanceHistoryRead, AttendanceRead
from app.services import identity
from app.timeutils import ensure_utc, local_day

logger = logging.getLogger("app.attendance")

CLOCK_IN_DESCRIPTION = "Clock in"
CLOCK_OUT_DESCRIPTION = "Clock out"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_local_day() -> date:
    return local_day(_utcnow())


def build_attendance_id(employee_code: str, day: date) -> str:
    return f"{employee_code}-{day.isoformat()}"


def _already_clocked_in() -> ApiError:
    return ApiError(status_code=400, code="ALREADY_CLOCKED_IN", message="You have already clocked in today.")


def to_attendance_read(attendance: Attendance) -> AttendanceRead:
    return AttendanceRead(
        id=attendance.id,
        employee_code=attendance.employee_code,
        attendance_id=attendance.attendance_id,
        clock_in=ensure_utc(attendance.clock_in),
        clock_out=ensure_utc(attendance.clock_out),
        created_at=ensure_utc(attendance.created_at),
        updated_at=ensure_utc(attendance.updated_at),
    )


def to_history_read(history: AttendanceHistory) -> AttendanceHistoryRead:
    return AttendanceHistoryRead(
        id=history.id,
        employee_code=history.employee_code,
        attendance_id=history.attendance_id,
        date_attendance=ensure_utc(history.date_attendance),
        attendance_type=history.attendance_type,
        description=history.description,
        created_at=ensure_utc(history.created_at),
        updated_at=ensure_utc(history.updated_at),
    )


def find_attendance(db: Session, attendance_id: str) -> Attendance | None:
    try:
        return db.scalar(
            select(Attendance).where(Attendance.attendance_id == attendance_id, not_deleted(Attendance))
        )
    except SQLAlchemyError as exc:
        logger.exception("attendance_lookup_failed", extra={"attendance_id": attendance_id})
        raise internal_error() from exc


def find_today_attendance(db: Session, profile: UserProfile) -> Attendance | None:
    return find_attendance(db, build_attendance_id(profile.employee_code, current_local_day()))


def clock_in(db: Session, user_id: UUID) -> Attendance:
    profile = identity.get_profile_or_404(db, user_id)
    if profile.department_id is None:
        raise ApiError(
            status_code=400,
            code="NO_DEPARTMENT",
            message="You must be assigned to a department before clocking in.",
        )

    now_utc = _utcnow()
    day = local_day(now_utc)
    attendance_id = build_attendance_id(profile.employee_code, day)
    if find_attendance(db, attendance_id) is not None:
        raise _already_clocked_in()

    attendance = Attendance(
        employee_code=profile.employee_code,
        attendance_id=attendance_id,
        attendance_date=day,
        clock_in=now_utc,
        clock_out=None,
    )
    db.add(attendance)
    db.add(
        AttendanceHistory(
            employee_code=profile.employee_code,
            attendance_id=attendance_id,
            date_attendance=now_utc,
            attendance_type=AttendanceType.IN,
            description=CLOCK_IN_DESCRIPTION,
        )
    )
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost the race against a concurrent clock-in for the same day.
        db.rollback()
        raise _already_clocked_in() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("attendance_clock_in_failed", extra={"attendance_id": attendance_id})
        raise internal_error() from exc

    logger.info(
        "attendance_clock_in",
        extra={"user_id": str(user_id), "attendance_id": attendance_id},
    )
    return attendance


def clock_out(db: Session, user_id: UUID) -> Attendance:
    profile = identity.get_profile_or_404(db, user_id)

    now_utc = _utcnow()
    attendance_id = build_attendance_id(profile.employee_code, local_day(now_utc))
    attendance = find_attendance(db, attendance_id)
    if attendance is None:
        raise ApiError(
            status_code=400,
            code="NO_CLOCK_IN_TODAY",
            message="You have not clocked in today.",
        )
    if attendance.clock_out is not None:
        raise ApiError(
            status_code=400,
            code="ALREADY_CLOCKED_OUT",
            message="You have already clocked out today.",
        )

    attendance.clock_out = now_utc
    db.add(
        AttendanceHistory(
            employee_code=profile.employee_code,
            attendance_id=attendance_id,
            date_attendance=now_utc,
            attendance_type=AttendanceType.OUT,
            description=CLOCK_OUT_DESCRIPTION,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("attendance_clock_out_failed", extra={"attendance_id": attendance_id})
        raise internal_error() from exc

    logger.info(
        "attendance_clock_out",
        extra={"user_id": str(user_id), "attendance_id": attendance_id},
    )
    return attendance


def list_history(db: Session, employee_code: str, params: PageParams) -> Page[AttendanceHistory]:
    stmt = select(AttendanceHistory).where(
        AttendanceHistory.employee_code == employee_code,
        not_deleted(AttendanceHistory),
    )
    total = count_rows(db, stmt)
    rows = db.scalars(
        stmt.order_by(AttendanceHistory.date_attendance.desc(), AttendanceHistory.id)
        .offset(params.offset)
        .limit(params.limit)
    ).all()
    return Page(items=list(rows), page=params.page, limit=params.limit, total_items=total)
