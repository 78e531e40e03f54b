from __future__ import annotations

from collections.abc import Generator
from datetime import time
import unittest
from typing import Any
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, get_db
from app.main import app
from app.models import Department, Role
from app.security import hash_password
from app.services import identity

API = "/api/v1"
DEFAULT_PASSWORD = "Passw0rd!"


def build_sqlite_engine() -> Engine:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def _override_get_db(session_factory: sessionmaker[Session]):
    def _override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    return _override


def auth_headers(access_token: str, *, device_id: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {access_token}"}
    if device_id:
        headers["X-Device-ID"] = device_id
    return headers


class ApiTestCase(unittest.TestCase):
    """Runs the real app against a private in-memory SQLite database."""

    def setUp(self) -> None:
        self.engine = build_sqlite_engine()
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        app.dependency_overrides[get_db] = _override_get_db(self.SessionLocal)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()

    def signup(self, email: str, *, password: str = DEFAULT_PASSWORD, full_name: str = "Test User") -> UUID:
        response = self.client.post(
            f"{API}/auth/signup",
            json={"email": email, "password": password, "full_name": full_name},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return UUID(response.json()["data"]["source_user_id"])

    def signin(self, email: str, *, password: str = DEFAULT_PASSWORD, device_id: str = "d1") -> dict[str, Any]:
        response = self.client.post(
            f"{API}/auth/signin",
            json={"email": email, "password": password},
            headers={"X-Device-ID": device_id},
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["data"]

    def create_admin(self, email: str = "admin@x.io") -> tuple[UUID, str]:
        with self.SessionLocal() as db:
            user = identity.create_account(
                db,
                email=email,
                password_hash=hash_password(DEFAULT_PASSWORD),
                full_name="Admin",
            )
            identity.assign_role(db, user.id, Role.ADMIN)
            user_id = user.id
        return user_id, self.signin(email)["access_token"]

    def create_employee(self, email: str, *, full_name: str = "Employee") -> tuple[UUID, str]:
        user_id = self.signup(email, full_name=full_name)
        return user_id, self.signin(email)["access_token"]

    def create_department(
        self,
        admin_token: str,
        *,
        name: str = "Engineering",
        max_clock_in: str = "09:00:00",
        max_clock_out: str = "17:00:00",
    ) -> UUID:
        response = self.client.post(
            f"{API}/departments",
            json={"name": name, "max_clock_in": max_clock_in, "max_clock_out": max_clock_out},
            headers=auth_headers(admin_token),
        )
        self.assertEqual(response.status_code, 201, response.text)
        return UUID(response.json()["data"]["id"])

    def assign(self, admin_token: str, user_id: UUID, department_id: UUID) -> None:
        response = self.client.post(
            f"{API}/departments/assignment",
            json={"user_id": str(user_id), "department_id": str(department_id)},
            headers=auth_headers(admin_token),
        )
        self.assertEqual(response.status_code, 200, response.text)

    def insert_department(self, *, name: str, max_clock_in: time | None, max_clock_out: time | None) -> UUID:
        with self.SessionLocal() as db:
            department = Department(name=name, max_clock_in=max_clock_in, max_clock_out=max_clock_out)
            db.add(department)
            db.commit()
            return department.id
