import re
from datetime import datetime, time
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models import AttendanceType, Role, UserStatus

PHONE_PATTERN = r"^\+?[0-9]{8,15}$"
_TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9]):([0-5][0-9])$")


def parse_hhmmss(value: str) -> time:
    match = _TIME_RE.match(value.strip())
    if match is None:
        raise ValueError("Invalid time format. Use HH:MM:SS.")
    return time(hour=int(match.group(1)), minute=int(match.group(2)), second=int(match.group(3)))


def format_hhmmss(value: time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M:%S")


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    full_name: str = Field(min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("full_name is required")
        return value


class SigninRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class SignoutRequest(BaseModel):
    refresh_token: str | None = None


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=8, max_length=72)


class ProfileUpdateRequest(BaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    avatar_url: str | None = Field(default=None, max_length=2048)
    address: str | None = Field(default=None, max_length=1000)


class RoleUpdateRequest(BaseModel):
    role: Role


class UserStatusUpdateRequest(BaseModel):
    status: UserStatus


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    max_clock_in: time
    max_clock_out: time

    @field_validator("max_clock_in", "max_clock_out", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_hhmmss(value)
        return value

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    max_clock_in: time | None = None
    max_clock_out: time | None = None

    @field_validator("max_clock_in", "max_clock_out", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            return parse_hhmmss(value)
        return value


class DepartmentAssignmentRequest(BaseModel):
    user_id: UUID
    department_id: UUID


class DepartmentRead(BaseModel):
    id: UUID
    name: str
    max_clock_in: str | None
    max_clock_out: str | None
    created_at: datetime
    updated_at: datetime


class UserRead(BaseModel):
    id: UUID
    source_user_id: UUID
    employee_code: str
    department_id: UUID | None
    full_name: str
    phone: str | None
    avatar_url: str | None
    address: str | None
    created_at: datetime
    updated_at: datetime
    department: DepartmentRead | None = None
    email: str
    role: Role
    status: UserStatus


class SigninData(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class RefreshData(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AttendanceRead(BaseModel):
    id: UUID
    employee_code: str
    attendance_id: str
    clock_in: datetime | None
    clock_out: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendanceHistoryRead(BaseModel):
    id: UUID
    employee_code: str
    attendance_id: str
    date_attendance: datetime
    attendance_type: AttendanceType
    description: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendanceLogRead(BaseModel):
    attendance_id: str
    employee_code: str
    full_name: str
    department_name: str | None
    clock_in: datetime | None
    clock_out: datetime | None
    max_clock_in: str | None
    max_clock_out: str | None
    in_punctuality: str
    out_punctuality: str


class AttendanceStatusRead(BaseModel):
    user_id: UUID
    employee_code: str
    full_name: str
    department: str | None
    status: str
    clock_in: datetime | None
    clock_out: datetime | None
    updated_at: datetime | None


class DashboardRead(BaseModel):
    total_employees_per_dept: dict[str, int]
    total_updated_depts: int
    total_today_registrations: int
