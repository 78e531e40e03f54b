"""Initial attendance service schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_status = sa.Enum("active", "inactive", name="user_status")
app_role = sa.Enum("employee", "admin", name="app_role")
attendance_type = sa.Enum("in", "out", name="attendance_type")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("status", user_status, nullable=False, server_default="active"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "credentials",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("source_user_id", sa.Uuid(), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["source_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("source_user_id", name="uq_credentials_source_user_id"),
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("max_clock_in", sa.Time(), nullable=True),
        sa.Column("max_clock_out", sa.Time(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("source_user_id", sa.Uuid(), nullable=False),
        sa.Column("employee_code", sa.String(length=64), nullable=False),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["source_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("source_user_id", name="uq_user_profiles_source_user_id"),
        sa.UniqueConstraint("employee_code", name="uq_user_profiles_employee_code"),
    )
    op.create_index("ix_user_profiles_department_id", "user_profiles", ["department_id"])

    op.create_table(
        "application_roles",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("source_user_id", sa.Uuid(), nullable=False),
        sa.Column("role", app_role, nullable=False, server_default="employee"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["source_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("source_user_id", name="uq_application_roles_source_user_id"),
    )

    op.create_table(
        "refresh_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("source_user_id", sa.Uuid(), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["source_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("source_user_id", "device_id", name="uq_refresh_sessions_user_device"),
    )
    op.create_index("ix_refresh_sessions_token_hash", "refresh_sessions", ["token_hash"])

    op.create_table(
        "attendances",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_code", sa.String(length=64), nullable=False),
        sa.Column("attendance_id", sa.String(length=100), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["employee_code"],
            ["user_profiles.employee_code"],
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("attendance_id", name="uq_attendances_attendance_id"),
        sa.UniqueConstraint("employee_code", "attendance_date", name="uq_attendances_employee_day"),
        sa.CheckConstraint(
            "clock_out IS NULL OR clock_in IS NULL OR clock_out >= clock_in",
            name="ck_attendances_clock_order",
        ),
    )
    op.create_index("ix_attendances_attendance_date", "attendances", ["attendance_date"])

    op.create_table(
        "attendance_histories",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_code", sa.String(length=64), nullable=False),
        sa.Column("attendance_id", sa.String(length=100), nullable=False),
        sa.Column("date_attendance", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attendance_type", attendance_type, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["attendance_id"],
            ["attendances.attendance_id"],
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_attendance_histories_attendance_id",
        "attendance_histories",
        ["attendance_id"],
    )
    op.create_index(
        "ix_attendance_histories_employee_date",
        "attendance_histories",
        ["employee_code", "date_attendance"],
    )


def downgrade() -> None:
    op.drop_index("ix_attendance_histories_employee_date", table_name="attendance_histories")
    op.drop_index("ix_attendance_histories_attendance_id", table_name="attendance_histories")
    op.drop_table("attendance_histories")
    op.drop_index("ix_attendances_attendance_date", table_name="attendances")
    op.drop_table("attendances")
    op.drop_index("ix_refresh_sessions_token_hash", table_name="refresh_sessions")
    op.drop_table("refresh_sessions")
    op.drop_table("application_roles")
    op.drop_index("ix_user_profiles_department_id", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("departments")
    op.drop_table("credentials")
    op.drop_table("users")

    bind = op.get_bind()
    attendance_type.drop(bind, checkfirst=True)
    app_role.drop(bind, checkfirst=True)
    user_status.drop(bind, checkfirst=True)
