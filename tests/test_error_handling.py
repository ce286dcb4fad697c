import unittest
from unittest.mock import patch

from inventaris import create_app
from inventaris.config import Config
from inventaris.db import close_db, get_db
from inventaris.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox


def _build_temp_app(temp_db: TempDbSandbox, **overrides):
    attrs = {
        "DATABASE_DIR": temp_db.temp_dir,
        "DB_PATH": temp_db.db_path,
        "TESTING": True,
        "LOG_JSON": False,
        "RATE_LIMIT_ENABLED": False,
        "PROPAGATE_EXCEPTIONS": False,
    }
    attrs.update(overrides)
    temp_config = type("TempConfig", (Config,), attrs)
    return create_app(temp_config)


class ErrorPermissionTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_perm")
        self.app = _build_temp_app(self._temp_db)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_permission_error_for_unauthenticated_api(self) -> None:
        response = self.client.get("/api/requests")
        self.assertEqual(response.status_code, 401)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "auth_required")
        self.assertEqual(payload.get("message"), error_message("auth_required"))
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertNotIn("Traceback", response.get_data(as_text=True))

    def test_stale_session_user_is_logged_out(self) -> None:
        with self.client.session_transaction() as session:
            session["user_id"] = "ghost"
        response = self.client.get("/api/me")
        self.assertEqual(response.status_code, 401)
        with self.client.session_transaction() as session:
            self.assertNotIn("user_id", session)

    def test_invalid_credentials(self) -> None:
        missing = self.client.post("/api/auth/login", json={"email": "", "password": ""})
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json().get("message"), error_message("auth_missing_credentials"))

        wrong = self.client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "salah"})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(wrong.get_json().get("error"), "invalid_credentials")


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = _build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        services = self.app.extensions["inventaris"]
        with self.app.app_context():
            db = get_db()
            self.admin = services.auth.register_user(
                db, email="admin@example.com", password="rahasia123", role="admin_produksi", primary_department="MLD"
            )
            self.spv = services.auth.register_user(
                db, email="spv@example.com", password="rahasia123", role="supervisor", primary_department="MLD"
            )
            self.hrga = services.auth.register_user(
                db, email="hrga@example.com", password="rahasia123", role="hrga", primary_department="GA"
            )
            self.item_id = services.stock.create_item(db, self.hrga, sku="ATK-900", name="Kertas A4", current_stock=5).id

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _login_as(self, actor) -> None:
        with self.client.session_transaction() as session:
            session["user_id"] = actor.id

    def _create_request(self) -> int:
        self._login_as(self.admin)
        response = self.client.post(
            "/api/requests",
            json={"dept_code": "MLD", "items": [{"item_id": self.item_id, "quantity": 1}]},
        )
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        return int(response.get_json()["requests"][0]["id"])

    def test_validation_error_payload(self) -> None:
        self._login_as(self.admin)
        response = self.client.post("/api/requests", json={"dept_code": "MLD", "items": []})
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "empty_items")
        self.assertEqual(payload.get("message"), error_message("items_required"))
        self.assertTrue((payload.get("request_id") or "").strip())

    def test_conflict_for_repeated_decision(self) -> None:
        request_id = self._create_request()
        self._login_as(self.spv)
        first = self.client.post(f"/api/requests/{request_id}/approve", json={})
        self.assertEqual(first.status_code, 200)

        second = self.client.post(f"/api/requests/{request_id}/reject", json={"reason": "Terlambat"})
        self.assertEqual(second.status_code, 409)
        payload = second.get_json()
        self.assertEqual(payload.get("error"), "invalid_state_transition")
        self.assertEqual(payload.get("status"), "approved_spv")
        self.assertEqual(payload.get("event"), "reject")
        self.assertEqual(payload.get("message"), error_message("invalid_state_transition"))

    def test_out_of_scope_request_is_not_found(self) -> None:
        request_id = self._create_request()
        with self.app.app_context():
            outsider = self.app.extensions["inventaris"].auth.register_user(
                get_db(), email="spv-qc@example.com", password="rahasia123", role="supervisor", primary_department="QC"
            )
        self._login_as(outsider)
        response = self.client.get(f"/api/requests/{request_id}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json().get("error"), "not_found")

    def test_role_violation_is_forbidden(self) -> None:
        request_id = self._create_request()
        response = self.client.post(f"/api/requests/{request_id}/approve", json={})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json().get("error"), "unauthorized")

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        request_id = self._create_request()
        self._login_as(self.spv)
        lifecycle = self.app.extensions["inventaris"].lifecycle

        with patch.object(lifecycle, "approve_request", side_effect=RuntimeError("stack_secret_token")):
            response = self.client.post(f"/api/requests/{request_id}/approve", json={})

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "unexpected_error")
        self.assertEqual(payload.get("message"), error_message("unexpected_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)


if __name__ == "__main__":
    unittest.main()
