from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ApiError, internal_error
from app.models import RefreshSession, UserStatus
from app.schemas import UserRead
from app.security import (
    create_access_token,
    create_refresh_token,
    generate_refresh_secret,
    hash_password,
    hash_token,
    verify_password,
)
from app.services import identity
from app.settings import get_settings
from app.timeutils import ensure_utc

logger = logging.getLogger("app.sessions")


@dataclass(frozen=True, slots=True)
class SigninResult:
    access_token: str
    expires_in: int
    refresh_token: str
    user: UserRead


@dataclass(frozen=True, slots=True)
class RefreshResult:
    access_token: str
    expires_in: int
    refresh_token: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _invalid_credentials() -> ApiError:
    return ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid email or password.")


def _invalid_refresh() -> ApiError:
    return ApiError(status_code=401, code="INVALID_REFRESH", message="Refresh token is invalid.")


def _require_device(device_id: str | None) -> str:
    device_id = (device_id or "").strip()
    if not device_id:
        raise ApiError(
            status_code=422,
            code="MISSING_DEVICE",
            message="Device id is required.",
            errors=[{"field": "X-Device-ID", "message": "X-Device-ID header is required"}],
        )
    return device_id


def _upsert_refresh_session(
    db: Session,
    *,
    user_id: UUID,
    device_id: str,
    token_hash: str,
    expires_at: datetime,
    now_utc: datetime,
) -> None:
    def _apply() -> None:
        row = db.scalar(
            select(RefreshSession).where(
                RefreshSession.source_user_id == user_id,
                RefreshSession.device_id == device_id,
            )
        )
        if row is None:
            db.add(
                RefreshSession(
                    source_user_id=user_id,
                    device_id=device_id,
                    token_hash=token_hash,
                    expires_at=expires_at,
                    last_used_at=now_utc,
                    revoked_at=None,
                )
            )
            return
        row.token_hash = token_hash
        row.expires_at = expires_at
        row.last_used_at = now_utc
        row.revoked_at = None

    _apply()
    try:
        db.commit()
        return
    except IntegrityError:
        # A parallel signin on the same device inserted first; overwrite its row.
        db.rollback()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("refresh_session_upsert_failed", extra={"user_id": str(user_id), "device_id": device_id})
        raise internal_error() from exc

    _apply()
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("refresh_session_upsert_failed", extra={"user_id": str(user_id), "device_id": device_id})
        raise internal_error() from exc


def signin(db: Session, *, email: str, password: str, device_id: str | None) -> SigninResult:
    device_id = _require_device(device_id)
    user = identity.find_by_email(db, email)
    if user is None:
        logger.info("signin_failed", extra={"reason": "UNKNOWN_EMAIL"})
        raise _invalid_credentials()

    credential = identity.get_credential(db, user.id)
    if credential is None or not verify_password(password, credential.password_hash):
        logger.info("signin_failed", extra={"reason": "BAD_PASSWORD", "user_id": str(user.id)})
        raise _invalid_credentials()

    if user.status != UserStatus.ACTIVE:
        logger.info("signin_failed", extra={"reason": "INACTIVE", "user_id": str(user.id)})
        raise _invalid_credentials()

    role = identity.get_role(db, user.id)
    access_token, expires_in = create_access_token(user_id=user.id, email=user.email, role=role)
    refresh_token = create_refresh_token(user_id=user.id)

    now_utc = _utcnow()
    _upsert_refresh_session(
        db,
        user_id=user.id,
        device_id=device_id,
        token_hash=hash_token(refresh_token),
        expires_at=now_utc + timedelta(hours=get_settings().signin_refresh_hours),
        now_utc=now_utc,
    )

    profile = identity.get_profile_or_404(db, user.id)
    logger.info("signin_success", extra={"user_id": str(user.id), "device_id": device_id})
    return SigninResult(
        access_token=access_token,
        expires_in=expires_in,
        refresh_token=refresh_token,
        user=identity.to_user_read(profile, user=user, role=role),
    )


def refresh(db: Session, *, refresh_token: str, device_id: str | None) -> RefreshResult:
    device_id = _require_device(device_id)
    old_hash = hash_token(refresh_token)
    session_row = db.scalar(
        select(RefreshSession).where(
            RefreshSession.token_hash == old_hash,
            RefreshSession.device_id == device_id,
        )
    )
    if session_row is None:
        logger.info("refresh_failed", extra={"reason": "NOT_FOUND", "device_id": device_id})
        raise _invalid_refresh()

    now_utc = _utcnow()
    if session_row.revoked_at is not None:
        logger.info("refresh_failed", extra={"reason": "REVOKED", "device_id": device_id})
        raise ApiError(status_code=401, code="REFRESH_REVOKED", message="Refresh token has been revoked.")
    if now_utc >= ensure_utc(session_row.expires_at):
        logger.info("refresh_failed", extra={"reason": "EXPIRED", "device_id": device_id})
        raise ApiError(status_code=401, code="REFRESH_EXPIRED", message="Refresh token has expired.")

    user = identity.find_by_id(db, session_row.source_user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise _invalid_refresh()

    role = identity.get_role(db, user.id)
    access_token, expires_in = create_access_token(user_id=user.id, email=user.email, role=role)
    new_refresh_token = generate_refresh_secret()

    try:
        result = db.execute(
            update(RefreshSession)
            .where(
                RefreshSession.id == session_row.id,
                RefreshSession.token_hash == old_hash,
                RefreshSession.revoked_at.is_(None),
            )
            .values(
                token_hash=hash_token(new_refresh_token),
                expires_at=now_utc + timedelta(days=get_settings().refresh_token_days),
                last_used_at=now_utc,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.info("refresh_failed", extra={"reason": "LOST_ROTATION_RACE", "device_id": device_id})
            raise _invalid_refresh()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("refresh_rotation_failed", extra={"user_id": str(user.id), "device_id": device_id})
        raise internal_error() from exc

    logger.info("refresh_rotated", extra={"user_id": str(user.id), "device_id": device_id})
    return RefreshResult(
        access_token=access_token,
        expires_in=expires_in,
        refresh_token=new_refresh_token,
    )


def signout(
    db: Session,
    *,
    user_id: UUID,
    refresh_token: str | None = None,
    device_id: str | None = None,
) -> None:
    stmt = update(RefreshSession).where(
        RefreshSession.source_user_id == user_id,
        RefreshSession.revoked_at.is_(None),
    )
    if refresh_token:
        stmt = stmt.where(RefreshSession.token_hash == hash_token(refresh_token))
    elif device_id:
        stmt = stmt.where(RefreshSession.device_id == device_id)
    else:
        logger.info("signout_noop", extra={"user_id": str(user_id)})
        return

    now_utc = _utcnow()
    try:
        result = db.execute(
            stmt.values(revoked_at=now_utc, updated_at=now_utc).execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("signout_failed", extra={"user_id": str(user_id)})
        raise internal_error() from exc
    logger.info("signout", extra={"user_id": str(user_id), "revoked": result.rowcount})


def change_password(db: Session, *, user_id: UUID, old_password: str, new_password: str) -> None:
    credential = identity.get_credential(db, user_id)
    if credential is None or not verify_password(old_password, credential.password_hash):
        logger.info("password_change_failed", extra={"user_id": str(user_id)})
        raise _invalid_credentials()

    identity.update_credential(db, user_id, hash_password(new_password))
    logger.info("password_changed", extra={"user_id": str(user_id)})
