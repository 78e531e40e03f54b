from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.schemas import (
    ChangePasswordRequest,
    RefreshData,
    RefreshRequest,
    SigninData,
    SigninRequest,
    SignoutRequest,
    SignupRequest,
)
from app.security import Principal, hash_password, optional_device_id, require_principal
from app.services import identity, sessions

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    user = identity.create_account(
        db,
        email=payload.email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
    )
    view = identity.build_user_view(db, user.id)
    return success_payload(
        view.model_dump(mode="json"),
        message="User registered successfully",
        code=status.HTTP_201_CREATED,
    )


@router.post("/signin")
def signin(
    payload: SigninRequest,
    request: Request,
    device_id: str | None = Depends(optional_device_id),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    result = sessions.signin(db, email=payload.email, password=payload.password, device_id=device_id)
    request.state.actor = result.user.role.value
    request.state.actor_id = str(result.user.source_user_id)
    data = SigninData(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user=result.user,
    )
    return success_payload(data.model_dump(mode="json"), message="Signin successful")


@router.post("/refresh")
def refresh(
    payload: RefreshRequest,
    device_id: str | None = Depends(optional_device_id),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    result = sessions.refresh(db, refresh_token=payload.refresh_token, device_id=device_id)
    data = RefreshData(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
    )
    return success_payload(data.model_dump(mode="json"), message="Token refreshed successfully")


@router.post("/signout")
def signout(
    payload: SignoutRequest | None = Body(default=None),
    device_id: str | None = Depends(optional_device_id),
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    sessions.signout(
        db,
        user_id=principal.user_id,
        refresh_token=payload.refresh_token if payload is not None else None,
        device_id=device_id,
    )
    return success_payload(None, message="Signout successful")


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    sessions.change_password(
        db,
        user_id=principal.user_id,
        old_password=payload.old_password,
        new_password=payload.new_password,
    )
    return success_payload(None, message="Password changed successfully")
