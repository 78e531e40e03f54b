from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.models import UserStatus
from app.pagination import PageParams, page_params
from app.schemas import RoleUpdateRequest, UserStatusUpdateRequest
from app.security import require_admin
from app.services import identity
from app.timeutils import local_day_bounds_utc

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_admin)])


@router.get("")
def list_users(
    email: str | None = Query(default=None, max_length=255),
    status: UserStatus | None = Query(default=None),
    department_id: UUID | None = Query(default=None),
    created_at_start: date | None = Query(default=None),
    created_at_end: date | None = Query(default=None),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    filters = identity.ProfileFilter(
        email=email.strip() if email and email.strip() else None,
        status=status,
        department_id=department_id,
        created_at_start=local_day_bounds_utc(created_at_start)[0] if created_at_start else None,
        created_at_end=local_day_bounds_utc(created_at_end)[1] if created_at_end else None,
    )
    page = identity.list_profiles(db, filters, params)
    return success_payload(
        [identity.profile_to_user_read(profile).model_dump(mode="json") for profile in page.items],
        message="Users retrieved successfully",
        pagination=page.pagination(),
    )


@router.get("/{user_id}")
def get_user(user_id: UUID, db: Session = Depends(get_db)) -> dict[str, Any]:
    view = identity.build_user_view(db, user_id)
    return success_payload(view.model_dump(mode="json"), message="User retrieved successfully")


@router.put("/{user_id}/role")
def change_user_role(
    user_id: UUID,
    payload: RoleUpdateRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    identity.assign_role(db, user_id, payload.role)
    view = identity.build_user_view(db, user_id)
    return success_payload(view.model_dump(mode="json"), message="Role updated successfully")


@router.patch("/{user_id}/status")
def update_user_status(
    user_id: UUID,
    payload: UserStatusUpdateRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    identity.set_user_status(db, user_id, payload.status)
    view = identity.build_user_view(db, user_id)
    return success_payload(view.model_dump(mode="json"), message="User status updated successfully")
