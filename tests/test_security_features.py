from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import logging
import os
import unittest
from unittest.mock import patch
from uuid import uuid4

from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from starlette.requests import Request

from app.errors import ApiError
from app.logging_utils import JsonFormatter
from app.main import app
from app.models import Role
from app.rate_limit import build_limiter, client_key, init_rate_limiting
from app.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    generate_refresh_secret,
    hash_password,
    verify_password,
)
from app.settings import get_rate_limit, get_settings, require_jwt_secret


def _request_with_headers(headers: dict[str, str], client_host: str = "10.0.0.9") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(key.lower().encode(), value.encode()) for key, value in headers.items()],
        "client": (client_host, 12345),
    }
    return Request(scope)


class PasswordAndTokenTests(unittest.TestCase):
    def test_password_hash_round_trip(self) -> None:
        password_hash = hash_password("Passw0rd!")

        self.assertNotEqual(password_hash, "Passw0rd!")
        self.assertTrue(verify_password("Passw0rd!", password_hash))
        self.assertFalse(verify_password("wrong", password_hash))
        self.assertFalse(verify_password("Passw0rd!", "not-a-bcrypt-hash"))

    def test_access_token_carries_identity(self) -> None:
        user_id = uuid4()
        token, expires_in = create_access_token(user_id=user_id, email="a@b.io", role=Role.ADMIN)

        principal = decode_access_token(token)

        self.assertEqual(principal.user_id, user_id)
        self.assertEqual(principal.email, "a@b.io")
        self.assertTrue(principal.is_admin)
        self.assertEqual(expires_in, get_settings().access_token_minutes * 60)

    def test_expired_access_token_is_rejected(self) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        with patch("app.security._utcnow", return_value=past):
            token, _ = create_access_token(user_id=uuid4(), email="a@b.io", role=Role.EMPLOYEE)

        with self.assertRaises(ApiError) as ctx:
            decode_access_token(token)

        self.assertEqual(ctx.exception.code, "UNAUTHORIZED")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_token_from_other_audience_is_rejected(self) -> None:
        claims = {
            "sub": str(uuid4()),
            "user_id": str(uuid4()),
            "kind": "access",
            "aud": "someone-else",
            "iss": get_settings().jwt_issuer,
            "iat": int(datetime.now(timezone.utc).timestamp()),
            "exp": int((datetime.now(timezone.utc) + timedelta(minutes=5)).timestamp()),
        }
        token = jwt.encode(claims, require_jwt_secret(), algorithm="HS256")

        with self.assertRaises(ApiError):
            decode_access_token(token)

    def test_refresh_jwt_is_not_an_access_token(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            decode_access_token(create_refresh_token(user_id=uuid4()))

        self.assertEqual(ctx.exception.message, "Token type is invalid.")

    def test_rotated_refresh_secret_is_opaque(self) -> None:
        first = generate_refresh_secret()

        self.assertEqual(len(first), 64)
        self.assertNotEqual(first, generate_refresh_secret())


class SettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_missing_jwt_secret_is_fatal(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": ""}, clear=False):
            get_settings.cache_clear()
            with self.assertRaises(RuntimeError):
                require_jwt_secret()

    def test_rate_limit_string(self) -> None:
        with patch.dict(
            os.environ,
            {"RATE_LIMIT_REQUESTS": "5", "RATE_LIMIT_WINDOW_SECONDS": "10"},
            clear=False,
        ):
            get_settings.cache_clear()
            self.assertEqual(get_rate_limit(), "5/10 seconds")


class RateLimitTests(unittest.TestCase):
    def test_client_key_prefers_first_forwarded_address(self) -> None:
        request = _request_with_headers({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        self.assertEqual(client_key(request), "203.0.113.7")

    def test_client_key_falls_back_to_peer(self) -> None:
        self.assertEqual(client_key(_request_with_headers({})), "10.0.0.9")

    def test_limit_exceeded_returns_envelope(self) -> None:
        limited_app = FastAPI()
        init_rate_limiting(limited_app, build_limiter("2/minute", enabled=True))

        @limited_app.get("/ping")
        def ping() -> dict[str, str]:
            return {"status": "ok"}

        client = TestClient(limited_app)
        self.assertEqual(client.get("/ping").status_code, 200)
        self.assertEqual(client.get("/ping").status_code, 200)

        response = client.get("/ping")

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["status"], "RATE_LIMITED")
        self.assertEqual(response.json()["code"], 429)


class ErrorEnvelopeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def test_unknown_route_uses_error_envelope(self) -> None:
        response = self.client.get("/api/v1/does-not-exist")

        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertEqual(body["status"], "NOT_FOUND")
        self.assertEqual(body["errors"], [])
        self.assertIn("X-Request-Id", response.headers)

    def test_request_id_is_echoed(self) -> None:
        response = self.client.get("/health", headers={"X-Request-Id": "req-123"})

        self.assertEqual(response.headers["X-Request-Id"], "req-123")
        self.assertEqual(response.json()["status"], "ok")

    def test_validation_error_lists_fields(self) -> None:
        response = self.client.post("/api/v1/auth/signin", json={"email": "not-an-email"})

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["status"], "VALIDATION_ERROR")
        fields = {item["field"] for item in body["errors"]}
        self.assertIn("email", fields)
        self.assertIn("password", fields)


class JsonLoggingTests(unittest.TestCase):
    def _format(self, formatter: JsonFormatter, **extra) -> dict:  # type: ignore[no-untyped-def]
        record = logging.getLogger("app.test").makeRecord(
            "app.test",
            logging.INFO,
            __file__,
            1,
            "attendance_clock_in",
            (),
            None,
            extra=extra,
        )
        return json.loads(formatter.format(record))

    def test_request_fields_are_always_present(self) -> None:
        payload = self._format(JsonFormatter(service="attendance-service"))

        self.assertEqual(payload["message"], "attendance_clock_in")
        self.assertEqual(payload["service"], "attendance-service")
        self.assertIsNone(payload["request_id"])
        self.assertIsNone(payload["actor_id"])

    def test_extra_fields_are_carried(self) -> None:
        payload = self._format(JsonFormatter(), request_id="req-1", actor_id="u-1", attendance_id="EMP-1-2026-03-02")

        self.assertEqual(payload["request_id"], "req-1")
        self.assertEqual(payload["actor_id"], "u-1")
        self.assertEqual(payload["attendance_id"], "EMP-1-2026-03-02")
        self.assertNotIn("service", payload)


if __name__ == "__main__":
    unittest.main()
