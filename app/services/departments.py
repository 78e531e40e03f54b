from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import not_deleted
from app.errors import ApiError, internal_error
from app.models import Department, UserProfile
from app.pagination import Page, PageParams, count_rows
from app.schemas import DepartmentCreate, DepartmentRead, DepartmentUpdate, format_hhmmss
from app.timeutils import ensure_utc

logger = logging.getLogger("app.departments")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _not_found() -> ApiError:
    return ApiError(status_code=404, code="DEPARTMENT_NOT_FOUND", message="Department not found.")


def to_department_read(department: Department) -> DepartmentRead:
    return DepartmentRead(
        id=department.id,
        name=department.name,
        max_clock_in=format_hhmmss(department.max_clock_in),
        max_clock_out=format_hhmmss(department.max_clock_out),
        created_at=ensure_utc(department.created_at),
        updated_at=ensure_utc(department.updated_at),
    )


def get_department(db: Session, department_id: UUID) -> Department | None:
    return db.scalar(select(Department).where(Department.id == department_id, not_deleted(Department)))


def get_department_or_404(db: Session, department_id: UUID) -> Department:
    department = get_department(db, department_id)
    if department is None:
        raise _not_found()
    return department


def department_exists(db: Session, department_id: UUID) -> bool:
    return get_department(db, department_id) is not None


def list_departments(db: Session, params: PageParams) -> Page[Department]:
    stmt = select(Department).where(not_deleted(Department))
    total = count_rows(db, stmt)
    rows = db.scalars(
        stmt.order_by(Department.name, Department.id).offset(params.offset).limit(params.limit)
    ).all()
    return Page(items=list(rows), page=params.page, limit=params.limit, total_items=total)


def create_department(db: Session, payload: DepartmentCreate) -> Department:
    department = Department(
        name=payload.name,
        max_clock_in=payload.max_clock_in,
        max_clock_out=payload.max_clock_out,
    )
    db.add(department)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("department_create_failed", extra={"department_name": payload.name})
        raise internal_error() from exc
    db.refresh(department)
    logger.info("department_created", extra={"department_id": str(department.id), "department_name": department.name})
    return department


def update_department(db: Session, department_id: UUID, payload: DepartmentUpdate) -> Department:
    department = get_department_or_404(db, department_id)

    # Only non-empty fields replace stored values.
    if payload.name is not None and payload.name.strip():
        department.name = payload.name.strip()
    if payload.max_clock_in is not None:
        department.max_clock_in = payload.max_clock_in
    if payload.max_clock_out is not None:
        department.max_clock_out = payload.max_clock_out

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("department_update_failed", extra={"department_id": str(department_id)})
        raise internal_error() from exc
    db.refresh(department)
    logger.info("department_updated", extra={"department_id": str(department.id)})
    return department


def delete_department(db: Session, department_id: UUID) -> None:
    department = get_department_or_404(db, department_id)
    now_utc = _utcnow()
    department.deleted_at = now_utc
    try:
        db.execute(
            update(UserProfile)
            .where(UserProfile.department_id == department.id)
            .values(department_id=None, updated_at=now_utc)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("department_delete_failed", extra={"department_id": str(department_id)})
        raise internal_error() from exc
    logger.info("department_deleted", extra={"department_id": str(department_id)})


def count_updated_between(db: Session, start_utc: datetime, end_utc: datetime) -> int:
    stmt = select(func.count(Department.id)).where(
        not_deleted(Department),
        Department.updated_at >= start_utc,
        Department.updated_at < end_utc,
    )
    return int(db.scalar(stmt) or 0)
