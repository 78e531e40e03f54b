from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AttendanceType(str, enum.Enum):
    IN = "in"
    OUT = "out"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status", values_callable=_enum_values),
        nullable=False,
        default=UserStatus.ACTIVE,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    credential: Mapped[Credential | None] = relationship(back_populates="user", uselist=False)
    profile: Mapped[UserProfile | None] = relationship(back_populates="user", uselist=False)
    role_assignment: Mapped[ApplicationRole | None] = relationship(back_populates="user", uselist=False)


class Credential(TimestampMixin, Base):
    __tablename__ = "credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    user: Mapped[User] = relationship(back_populates="credential")


class Department(TimestampMixin, Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_clock_in: Mapped[time | None] = mapped_column(Time, nullable=True)
    max_clock_out: Mapped[time | None] = mapped_column(Time, nullable=True)

    profiles: Mapped[list[UserProfile]] = relationship(back_populates="department")


class UserProfile(TimestampMixin, Base):
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    employee_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship(back_populates="profile")
    department: Mapped[Department | None] = relationship(back_populates="profiles")


class ApplicationRole(TimestampMixin, Base):
    __tablename__ = "application_roles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="app_role", values_callable=_enum_values),
        nullable=False,
        default=Role.EMPLOYEE,
    )

    user: Mapped[User] = relationship(back_populates="role_assignment")


class RefreshSession(Base):
    __tablename__ = "refresh_sessions"
    __table_args__ = (
        UniqueConstraint("source_user_id", "device_id", name="uq_refresh_sessions_user_device"),
        Index("ix_refresh_sessions_token_hash", "token_hash"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class Attendance(TimestampMixin, Base):
    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("employee_code", "attendance_date", name="uq_attendances_employee_day"),
        CheckConstraint(
            "clock_out IS NULL OR clock_in IS NULL OR clock_out >= clock_in",
            name="ck_attendances_clock_order",
        ),
        Index("ix_attendances_attendance_date", "attendance_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_code: Mapped[str] = mapped_column(
        ForeignKey("user_profiles.employee_code", ondelete="CASCADE"),
        nullable=False,
    )
    attendance_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    clock_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    histories: Mapped[list[AttendanceHistory]] = relationship(back_populates="attendance")


class AttendanceHistory(TimestampMixin, Base):
    __tablename__ = "attendance_histories"
    __table_args__ = (
        Index("ix_attendance_histories_employee_date", "employee_code", "date_attendance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_code: Mapped[str] = mapped_column(String(64), nullable=False)
    attendance_id: Mapped[str] = mapped_column(
        ForeignKey("attendances.attendance_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_attendance: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attendance_type: Mapped[AttendanceType] = mapped_column(
        Enum(AttendanceType, name="attendance_type", values_callable=_enum_values),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    attendance: Mapped[Attendance] = relationship(back_populates="histories")
