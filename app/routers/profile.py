from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.schemas import ProfileUpdateRequest
from app.security import Principal, require_principal
from app.services import identity

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("")
def get_profile(
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    view = identity.build_user_view(db, principal.user_id)
    return success_payload(view.model_dump(mode="json"), message="Profile retrieved successfully")


@router.put("")
def update_profile(
    payload: ProfileUpdateRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    identity.update_profile(db, principal.user_id, payload.model_dump(exclude_none=True))
    view = identity.build_user_view(db, principal.user_id)
    return success_payload(view.model_dump(mode="json"), message="Profile updated successfully")
