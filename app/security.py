from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any
from uuid import UUID, uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from app.errors import ApiError
from app.models import Role
from app.settings import get_settings, require_jwt_secret

bearer_scheme = HTTPBearer(auto_error=False)

DEVICE_HEADER = "X-Device-ID"


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: UUID
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache
def _pwd_context() -> CryptContext:
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=get_settings().bcrypt_rounds,
    )


def hash_password(password: str) -> str:
    return _pwd_context().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context().verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        # Invalid/legacy hash values should not crash auth flow.
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_refresh_secret() -> str:
    return secrets.token_hex(32)


def _build_claims(*, kind: str, expires_delta: timedelta, user_id: UUID, extra: dict[str, Any]) -> dict[str, Any]:
    settings = get_settings()
    now = _utcnow()
    exp = now + expires_delta
    return {
        "sub": str(user_id),
        "user_id": str(user_id),
        **extra,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "kind": kind,
    }


def create_access_token(*, user_id: UUID, email: str, role: Role) -> tuple[str, int]:
    settings = get_settings()
    claims = _build_claims(
        kind="access",
        expires_delta=timedelta(minutes=settings.access_token_minutes),
        user_id=user_id,
        extra={"email": email, "role": role.value},
    )
    token = jwt.encode(claims, require_jwt_secret(), algorithm="HS256")
    return token, settings.access_token_minutes * 60


def create_refresh_token(*, user_id: UUID) -> str:
    settings = get_settings()
    claims = _build_claims(
        kind="refresh",
        expires_delta=timedelta(hours=settings.signin_refresh_hours),
        user_id=user_id,
        extra={},
    )
    return jwt.encode(claims, require_jwt_secret(), algorithm="HS256")


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            require_jwt_secret(),
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except ExpiredSignatureError as exc:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Access token has expired.") from exc
    except JWTError as exc:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Access token is invalid.") from exc

    if payload.get("kind") != "access":
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Token type is invalid.")

    try:
        user_id = UUID(str(payload.get("user_id")))
        role = Role(str(payload.get("role") or Role.EMPLOYEE.value))
    except ValueError as exc:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Token claims are invalid.") from exc

    return Principal(user_id=user_id, email=str(payload.get("email") or ""), role=role)


def require_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Missing bearer token.")

    principal = decode_access_token(credentials.credentials)
    request.state.actor = principal.role.value
    request.state.actor_id = str(principal.user_id)
    return principal


def require_admin(principal: Principal = Depends(require_principal)) -> Principal:
    if not principal.is_admin:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Admin role is required.")
    return principal


def optional_device_id(request: Request) -> str | None:
    device_id = (request.headers.get(DEVICE_HEADER) or "").strip()
    return device_id or None
