from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
import time
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.db import not_deleted
from app.errors import ApiError, internal_error
from app.models import (
    ApplicationRole,
    Credential,
    Department,
    Role,
    User,
    UserProfile,
    UserStatus,
)
from app.pagination import Page, PageParams, count_rows
from app.schemas import UserRead
from app.services.departments import department_exists, to_department_read
from app.timeutils import ensure_utc, local_day_bounds_utc

logger = logging.getLogger("app.identity")

EMPLOYEE_CODE_ATTEMPTS = 3
PROFILE_PATCH_FIELDS: tuple[str, ...] = ("full_name", "phone", "avatar_url", "address")


@dataclass(frozen=True, slots=True)
class ProfileFilter:
    email: str | None = None
    status: UserStatus | None = None
    department_id: UUID | None = None
    created_at_start: datetime | None = None
    created_at_end: datetime | None = None


def generate_employee_code() -> str:
    return f"EMP-{time.time_ns()}"


def _user_not_found() -> ApiError:
    return ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")


def _profile_not_found() -> ApiError:
    return ApiError(status_code=404, code="PROFILE_NOT_FOUND", message="Profile not found.")


def find_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.strip().lower(), not_deleted(User)))


def find_by_id(db: Session, user_id: UUID) -> User | None:
    return db.scalar(select(User).where(User.id == user_id, not_deleted(User)))


def _email_taken(db: Session, email: str) -> bool:
    return db.scalar(select(User.id).where(User.email == email)) is not None


def create_account(db: Session, *, email: str, password_hash: str, full_name: str) -> User:
    email = email.strip().lower()
    if _email_taken(db, email):
        raise ApiError(status_code=409, code="CONFLICT_EMAIL", message="Email is already registered.")

    for attempt in range(1, EMPLOYEE_CODE_ATTEMPTS + 1):
        user = User(email=email, status=UserStatus.ACTIVE, email_verified=False)
        db.add(user)
        try:
            db.flush()
            db.add(Credential(source_user_id=user.id, password_hash=password_hash))
            db.add(
                UserProfile(
                    source_user_id=user.id,
                    employee_code=generate_employee_code(),
                    full_name=full_name,
                )
            )
            db.add(ApplicationRole(source_user_id=user.id, role=Role.EMPLOYEE))
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _email_taken(db, email):
                raise ApiError(
                    status_code=409,
                    code="CONFLICT_EMAIL",
                    message="Email is already registered.",
                ) from exc
            logger.info("employee_code_collision", extra={"attempt": attempt})
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("account_create_failed", extra={"email": email})
            raise internal_error() from exc

        db.refresh(user)
        logger.info("account_created", extra={"user_id": str(user.id)})
        return user

    raise ApiError(
        status_code=409,
        code="CONFLICT_EMPLOYEE_CODE",
        message="Could not allocate a unique employee code.",
    )


def get_credential(db: Session, user_id: UUID) -> Credential | None:
    return db.scalar(
        select(Credential).where(Credential.source_user_id == user_id, not_deleted(Credential))
    )


def update_credential(db: Session, user_id: UUID, new_hash: str) -> None:
    credential = get_credential(db, user_id)
    if credential is None:
        raise _user_not_found()
    credential.password_hash = new_hash
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("credential_update_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc


def get_role(db: Session, user_id: UUID) -> Role:
    role = db.scalar(
        select(ApplicationRole.role).where(
            ApplicationRole.source_user_id == user_id,
            not_deleted(ApplicationRole),
        )
    )
    return role or Role.EMPLOYEE


def assign_role(db: Session, user_id: UUID, role: Role) -> Role:
    user = find_by_id(db, user_id)
    if user is None:
        raise _user_not_found()

    assignment = db.scalar(select(ApplicationRole).where(ApplicationRole.source_user_id == user_id))
    if assignment is None:
        db.add(ApplicationRole(source_user_id=user_id, role=role))
    else:
        assignment.role = role
        assignment.deleted_at = None

    if role == Role.ADMIN:
        # Admins never carry a department.
        profile = get_profile(db, user_id)
        if profile is not None:
            profile.department_id = None

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("role_assign_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc
    logger.info("role_assigned", extra={"user_id": str(user_id), "role": role.value})
    return role


def set_user_status(db: Session, user_id: UUID, status: UserStatus) -> User:
    user = find_by_id(db, user_id)
    if user is None:
        raise _user_not_found()
    user.status = status
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("user_status_update_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc
    db.refresh(user)
    logger.info("user_status_updated", extra={"user_id": str(user_id), "status": status.value})
    return user


def get_profile(db: Session, user_id: UUID) -> UserProfile | None:
    return db.scalar(
        select(UserProfile)
        .options(selectinload(UserProfile.department), selectinload(UserProfile.user))
        .where(UserProfile.source_user_id == user_id, not_deleted(UserProfile))
    )


def get_profile_or_404(db: Session, user_id: UUID) -> UserProfile:
    profile = get_profile(db, user_id)
    if profile is None:
        raise _profile_not_found()
    return profile


def update_profile(db: Session, user_id: UUID, patch: dict[str, Any]) -> UserProfile:
    profile = get_profile_or_404(db, user_id)

    changed = False
    for field_name in PROFILE_PATCH_FIELDS:
        value = patch.get(field_name)
        if value is None:
            continue
        value = str(value).strip()
        if not value or getattr(profile, field_name) == value:
            continue
        setattr(profile, field_name, value)
        changed = True

    if not changed:
        return profile

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("profile_update_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc
    db.refresh(profile)
    logger.info("profile_updated", extra={"user_id": str(user_id)})
    return profile


def list_profiles(db: Session, filters: ProfileFilter, params: PageParams) -> Page[UserProfile]:
    stmt = select(UserProfile).where(not_deleted(UserProfile))

    if filters.email or filters.status is not None:
        stmt = stmt.join(User, User.id == UserProfile.source_user_id).where(not_deleted(User))
        if filters.email:
            stmt = stmt.where(User.email.contains(filters.email.strip().lower(), autoescape=True))
        if filters.status is not None:
            stmt = stmt.where(User.status == filters.status)
    if filters.department_id is not None:
        stmt = stmt.where(UserProfile.department_id == filters.department_id)
    if filters.created_at_start is not None:
        stmt = stmt.where(UserProfile.created_at >= filters.created_at_start)
    if filters.created_at_end is not None:
        stmt = stmt.where(UserProfile.created_at < filters.created_at_end)

    total = count_rows(db, stmt)
    rows = db.scalars(
        stmt.options(
            selectinload(UserProfile.department),
            selectinload(UserProfile.user).selectinload(User.role_assignment),
        )
        .order_by(UserProfile.created_at.desc(), UserProfile.id)
        .offset(params.offset)
        .limit(params.limit)
    ).all()
    return Page(items=list(rows), page=params.page, limit=params.limit, total_items=total)


def assign_department(db: Session, user_id: UUID, department_id: UUID) -> UserProfile:
    user = find_by_id(db, user_id)
    if user is None:
        raise _user_not_found()

    if get_role(db, user_id) == Role.ADMIN:
        raise ApiError(
            status_code=400,
            code="ADMIN_NOT_ASSIGNABLE",
            message="admin cannot be assigned to department",
        )

    if not department_exists(db, department_id):
        raise ApiError(status_code=404, code="DEPARTMENT_NOT_FOUND", message="Department not found.")

    profile = get_profile_or_404(db, user_id)
    profile.department_id = department_id
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("department_assign_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc
    db.refresh(profile)
    logger.info(
        "department_assigned",
        extra={"user_id": str(user_id), "department_id": str(department_id)},
    )
    return profile


def count_employees_per_department(db: Session) -> dict[str, int]:
    stmt = (
        select(Department.name, func.count(UserProfile.id))
        .select_from(Department)
        .join(
            UserProfile,
            (UserProfile.department_id == Department.id) & not_deleted(UserProfile),
            isouter=True,
        )
        .where(not_deleted(Department))
        .group_by(Department.name)
        .order_by(Department.name)
    )
    return {str(name): int(count) for name, count in db.execute(stmt).all()}


def count_registrations_between(db: Session, start_utc: datetime, end_utc: datetime) -> int:
    stmt = select(func.count(UserProfile.id)).where(
        not_deleted(UserProfile),
        UserProfile.created_at >= start_utc,
        UserProfile.created_at < end_utc,
    )
    return int(db.scalar(stmt) or 0)


def count_registrations_on(db: Session, day: date) -> int:
    start_utc, end_utc = local_day_bounds_utc(day)
    return count_registrations_between(db, start_utc, end_utc)


def to_user_read(profile: UserProfile, *, user: User, role: Role) -> UserRead:
    department = profile.department
    if department is not None and department.deleted_at is not None:
        department = None
    return UserRead(
        id=profile.id,
        source_user_id=profile.source_user_id,
        employee_code=profile.employee_code,
        department_id=profile.department_id,
        full_name=profile.full_name,
        phone=profile.phone,
        avatar_url=profile.avatar_url,
        address=profile.address,
        created_at=ensure_utc(profile.created_at),
        updated_at=ensure_utc(profile.updated_at),
        department=to_department_read(department) if department is not None else None,
        email=user.email,
        role=role,
        status=user.status,
    )


def build_user_view(db: Session, user_id: UUID) -> UserRead:
    user = find_by_id(db, user_id)
    if user is None:
        raise _user_not_found()
    profile = get_profile_or_404(db, user_id)
    return to_user_read(profile, user=user, role=get_role(db, user_id))


def profile_to_user_read(profile: UserProfile) -> UserRead:
    assignment = profile.user.role_assignment
    role = assignment.role if assignment is not None and assignment.deleted_at is None else Role.EMPLOYEE
    return to_user_read(profile, user=profile.user, role=role)
