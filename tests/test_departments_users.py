from __future__ import annotations

from types import SimpleNamespace
import unittest
from unittest.mock import MagicMock, patch
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from app.errors import ApiError
from app.services.departments import delete_department
from support import API, ApiTestCase, auth_headers


class DepartmentTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin_id, self.admin_token = self.create_admin()
        self.admin_headers = auth_headers(self.admin_token)

    def test_create_department_returns_created_view(self) -> None:
        with self.assertLogs("app.departments", level="INFO") as logs:
            response = self.client.post(
                f"{API}/departments",
                json={"name": "Finance", "max_clock_in": "08:30:00", "max_clock_out": "16:30:00"},
                headers=self.admin_headers,
            )

        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertEqual(body["code"], 201)
        self.assertEqual(body["status"], "OK")
        self.assertEqual(body["data"]["name"], "Finance")
        self.assertEqual(body["data"]["max_clock_in"], "08:30:00")
        self.assertEqual(body["data"]["max_clock_out"], "16:30:00")
        created = [record for record in logs.records if record.getMessage() == "department_created"]
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].department_name, "Finance")

        listing = self.client.get(f"{API}/departments", headers=self.admin_headers)
        self.assertEqual([item["id"] for item in listing.json()["data"]], [body["data"]["id"]])

    def test_create_and_read_department(self) -> None:
        department_id = self.create_department(self.admin_token, name="Support")

        response = self.client.get(f"{API}/departments/{department_id}", headers=self.admin_headers)

        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Support")
        self.assertEqual(data["max_clock_in"], "09:00:00")
        self.assertEqual(data["max_clock_out"], "17:00:00")

    def test_create_rejects_bad_time_format(self) -> None:
        response = self.client.post(
            f"{API}/departments",
            json={"name": "Night", "max_clock_in": "25:00:00", "max_clock_out": "06:00:00"},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["status"], "VALIDATION_ERROR")

    def test_employee_cannot_manage_departments(self) -> None:
        _, token = self.create_employee("emp@example.com")

        response = self.client.post(
            f"{API}/departments",
            json={"name": "Rogue", "max_clock_in": "09:00:00", "max_clock_out": "17:00:00"},
            headers=auth_headers(token),
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["status"], "FORBIDDEN")

    def test_any_user_can_list_departments(self) -> None:
        self.create_department(self.admin_token, name="Beta")
        self.create_department(self.admin_token, name="Alpha")
        _, token = self.create_employee("emp@example.com")

        response = self.client.get(f"{API}/departments", headers=auth_headers(token))

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual([item["name"] for item in response.json()["data"]], ["Alpha", "Beta"])
        self.assertEqual(response.json()["pagination"]["current_page"], 1)

    def test_update_only_replaces_provided_fields(self) -> None:
        department_id = self.create_department(self.admin_token, name="Ops")

        response = self.client.put(
            f"{API}/departments/{department_id}",
            json={"name": "", "max_clock_out": "18:30:00"},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Ops")
        self.assertEqual(data["max_clock_in"], "09:00:00")
        self.assertEqual(data["max_clock_out"], "18:30:00")

    def test_unknown_department_is_not_found(self) -> None:
        response = self.client.get(f"{API}/departments/{uuid4()}", headers=self.admin_headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["status"], "DEPARTMENT_NOT_FOUND")

    def test_delete_is_soft_and_detaches_members(self) -> None:
        department_id = self.create_department(self.admin_token, name="Temp")
        user_id, token = self.create_employee("member@example.com")
        self.assign(self.admin_token, user_id, department_id)

        response = self.client.delete(f"{API}/departments/{department_id}", headers=self.admin_headers)
        self.assertEqual(response.status_code, 200, response.text)

        self.assertEqual(
            self.client.get(f"{API}/departments/{department_id}", headers=self.admin_headers).status_code,
            404,
        )
        profile = self.client.get(f"{API}/profile", headers=auth_headers(token)).json()["data"]
        self.assertIsNone(profile["department_id"])
        self.assertIsNone(profile["department"])

    def test_assignment_rules(self) -> None:
        department_id = self.create_department(self.admin_token)
        user_id, _ = self.create_employee("assignee@example.com")

        admin_assign = self.client.post(
            f"{API}/departments/assignment",
            json={"user_id": str(self.admin_id), "department_id": str(department_id)},
            headers=self.admin_headers,
        )
        missing_department = self.client.post(
            f"{API}/departments/assignment",
            json={"user_id": str(user_id), "department_id": str(uuid4())},
            headers=self.admin_headers,
        )
        missing_user = self.client.post(
            f"{API}/departments/assignment",
            json={"user_id": str(uuid4()), "department_id": str(department_id)},
            headers=self.admin_headers,
        )

        self.assertEqual(admin_assign.status_code, 400)
        self.assertEqual(admin_assign.json()["status"], "ADMIN_NOT_ASSIGNABLE")
        self.assertEqual(admin_assign.json()["message"], "admin cannot be assigned to department")
        self.assertEqual(missing_department.status_code, 404)
        self.assertEqual(missing_department.json()["status"], "DEPARTMENT_NOT_FOUND")
        self.assertEqual(missing_user.status_code, 404)
        self.assertEqual(missing_user.json()["status"], "USER_NOT_FOUND")

        ok = self.client.post(
            f"{API}/departments/assignment",
            json={"user_id": str(user_id), "department_id": str(department_id)},
            headers=self.admin_headers,
        )
        self.assertEqual(ok.status_code, 200, ok.text)
        self.assertEqual(ok.json()["data"]["department"]["name"], "Engineering")


class UserAdministrationTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin_id, self.admin_token = self.create_admin()
        self.admin_headers = auth_headers(self.admin_token)

    def test_user_routes_are_admin_only(self) -> None:
        _, token = self.create_employee("plain@example.com")

        response = self.client.get(f"{API}/users", headers=auth_headers(token))

        self.assertEqual(response.status_code, 403)

    def test_list_users_filters(self) -> None:
        department_id = self.create_department(self.admin_token)
        alice_id, _ = self.create_employee("alice@corp.io", full_name="Alice")
        self.create_employee("bob@other.io", full_name="Bob")
        self.assign(self.admin_token, alice_id, department_id)

        by_email = self.client.get(f"{API}/users", params={"email": "CORP"}, headers=self.admin_headers)
        by_department = self.client.get(
            f"{API}/users",
            params={"department_id": str(department_id)},
            headers=self.admin_headers,
        )
        everyone = self.client.get(f"{API}/users", headers=self.admin_headers)

        self.assertEqual([item["full_name"] for item in by_email.json()["data"]], ["Alice"])
        self.assertEqual([item["full_name"] for item in by_department.json()["data"]], ["Alice"])
        self.assertEqual(everyone.json()["pagination"]["total_items"], 3)

    def test_list_users_by_status(self) -> None:
        user_id, _ = self.create_employee("sleepy@example.com", full_name="Sleepy")
        self.client.patch(
            f"{API}/users/{user_id}/status",
            json={"status": "inactive"},
            headers=self.admin_headers,
        )

        response = self.client.get(f"{API}/users", params={"status": "inactive"}, headers=self.admin_headers)

        self.assertEqual([item["full_name"] for item in response.json()["data"]], ["Sleepy"])

    def test_get_unknown_user(self) -> None:
        response = self.client.get(f"{API}/users/{uuid4()}", headers=self.admin_headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["status"], "USER_NOT_FOUND")

    def test_promoting_to_admin_clears_department(self) -> None:
        department_id = self.create_department(self.admin_token)
        user_id, _ = self.create_employee("rising@example.com")
        self.assign(self.admin_token, user_id, department_id)

        response = self.client.put(
            f"{API}/users/{user_id}/role",
            json={"role": "admin"},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["role"], "admin")
        self.assertIsNone(data["department_id"])


class ProfileTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        _, token = self.create_employee("me@example.com", full_name="Me")
        self.headers = auth_headers(token)

    def test_update_profile_fields(self) -> None:
        response = self.client.put(
            f"{API}/profile",
            json={"full_name": "Me Myself", "phone": "+628123456789", "address": "Jl. Merdeka 1"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["full_name"], "Me Myself")
        self.assertEqual(data["phone"], "+628123456789")
        self.assertEqual(data["address"], "Jl. Merdeka 1")

    def test_empty_patch_keeps_profile(self) -> None:
        before = self.client.get(f"{API}/profile", headers=self.headers).json()["data"]

        response = self.client.put(f"{API}/profile", json={}, headers=self.headers)

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["data"]["full_name"], before["full_name"])
        self.assertEqual(response.json()["data"]["updated_at"], before["updated_at"])

    def test_invalid_phone_is_rejected(self) -> None:
        response = self.client.put(f"{API}/profile", json={"phone": "call-me"}, headers=self.headers)

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["status"], "VALIDATION_ERROR")
        self.assertEqual(body["errors"][0]["field"], "phone")

    def test_phone_length_boundaries(self) -> None:
        cases = {
            "+1": 400,
            "+12345678": 200,
            "123456789012345": 200,
            "1234567890123456": 400,
        }
        for phone, expected_status in cases.items():
            with self.subTest(phone=phone):
                response = self.client.put(f"{API}/profile", json={"phone": phone}, headers=self.headers)

                self.assertEqual(response.status_code, expected_status, response.text)
                if expected_status == 200:
                    self.assertEqual(response.json()["data"]["phone"], phone)
                else:
                    self.assertEqual(response.json()["status"], "VALIDATION_ERROR")


class DepartmentStorageErrorTests(unittest.TestCase):
    def test_failed_member_detach_rolls_back_delete(self) -> None:
        db = MagicMock()
        db.execute.side_effect = OperationalError("update user_profiles", {}, Exception("connection lost"))
        department = SimpleNamespace(id=uuid4(), deleted_at=None)

        with patch("app.services.departments.get_department_or_404", return_value=department):
            with self.assertRaises(ApiError) as ctx:
                delete_department(db, department.id)

        self.assertEqual(ctx.exception.code, "INTERNAL_ERROR")
        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        db.rollback.assert_called_once()
        db.commit.assert_not_called()


if __name__ == "__main__":
    unittest.main()
