import re
import unittest

from inventaris import create_app
from inventaris.config import Config
from inventaris.db import close_db, get_db
from tests.helpers.temp_db import TempDbSandbox


_DOC_NUMBER = re.compile(r"^REQ/0001/MLD/[IVX]+/\d{4}$")


class InventoryApiSmokeTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="api_smoke")
        self.app = create_app(self._temp_db.make_config(Config))
        self.client = self.app.test_client()
        auth = self.app.extensions["inventaris"].auth
        with self.app.app_context():
            db = get_db()
            auth.register_user(db, email="admin@example.com", password="rahasia123", role="admin_produksi", primary_department="MLD")
            auth.register_user(db, email="spv@example.com", password="rahasia123", role="supervisor", primary_department="MLD")
            auth.register_user(db, email="hrga@example.com", password="rahasia123", role="hrga", primary_department="GA")

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _login(self, email: str) -> dict:
        response = self.client.post("/api/auth/login", json={"email": email, "password": "rahasia123"})
        self.assertEqual(response.status_code, 200, msg=response.get_data(as_text=True))
        return response.get_json()

    def test_request_flow_end_to_end(self) -> None:
        self._login("hrga@example.com")
        item_res = self.client.post(
            "/api/items",
            json={"sku": "ATK-100", "name": "Pulpen", "current_stock": 10, "min_stock": 8},
        )
        self.assertEqual(item_res.status_code, 201)
        item_id = item_res.get_json()["item"]["id"]

        profile = self._login("admin@example.com")
        self.assertEqual(profile["role"], "admin_produksi")
        create_res = self.client.post(
            "/api/requests",
            json={"dept_code": "MLD", "items": [{"item_id": item_id, "quantity": 4}]},
        )
        self.assertEqual(create_res.status_code, 201, msg=create_res.get_data(as_text=True))
        created = create_res.get_json()["requests"][0]
        self.assertRegex(created["doc_number"], _DOC_NUMBER)
        self.assertEqual(created["status"], "pending")
        self.assertEqual(created["status_label"], "Menunggu")
        request_id = created["id"]

        self._login("spv@example.com")
        approvals = self.client.get("/api/approvals").get_json()["requests"]
        self.assertEqual([row["id"] for row in approvals], [request_id])
        approve_res = self.client.post(f"/api/requests/{request_id}/approve", json={"signature": "ttd-spv"})
        self.assertEqual(approve_res.status_code, 200)
        self.assertEqual(approve_res.get_json()["request"]["status"], "approved_spv")

        self._login("hrga@example.com")
        candidates = self.client.get("/api/batches/candidates").get_json()["requests"]
        self.assertEqual([row["id"] for row in candidates], [request_id])
        batch_res = self.client.post(
            "/api/batches",
            json={"request_ids": [request_id], "schedule_datetime": "2026-03-14T08:00"},
        )
        self.assertEqual(batch_res.status_code, 201)
        batch_id = batch_res.get_json()["batch"]["id"]

        review_res = self.client.post(f"/api/batches/{batch_id}/review", json={"approved": True})
        self.assertEqual(review_res.get_json()["batch"]["status"], "approved")

        handover_res = self.client.post("/api/hand-over", json={"request_ids": [request_id]})
        self.assertEqual(handover_res.status_code, 200)
        self.assertEqual(handover_res.get_json()["succeeded"], [request_id])

        detail = self.client.get(f"/api/requests/{request_id}").get_json()
        self.assertEqual(detail["status"], "completed")
        self.assertEqual(detail["allowed_events"], [])

        low_stock = self.client.get("/api/items?low_stock=1").get_json()["items"]
        self.assertEqual([(row["sku"], row["current_stock"]) for row in low_stock], [("ATK-100", 6)])

        stats = self.client.get("/api/dashboard/stats").get_json()
        self.assertEqual(stats["completed_requests"], 1)

        notifications = self.client.get("/api/notifications").get_json()
        self.assertGreaterEqual(notifications["unread_count"], 1)
        read_all = self.client.post("/api/notifications/read-all").get_json()
        self.assertEqual(read_all["updated"], notifications["unread_count"])

    def test_incoming_stock_via_api(self) -> None:
        self._login("hrga@example.com")
        item_id = self.client.post("/api/items", json={"sku": "APD-100", "name": "Sarung tangan"}).get_json()["item"]["id"]

        payload = {"po_number": "PO-77", "incoming_date": "2026-03-10", "items": [{"item_id": item_id, "quantity": 12}]}
        first = self.client.post("/api/incoming", json=payload)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.get_json()["incoming"]["items"], [{"item_id": item_id, "quantity": 12}])

        duplicate = self.client.post("/api/incoming", json=payload)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "po_number_duplicate")

        items = self.client.get("/api/items").get_json()["items"]
        self.assertEqual(items[0]["current_stock"], 12)

    def test_profile_scope_and_doc_number_helpers(self) -> None:
        self._login("spv@example.com")
        me = self.client.get("/api/me").get_json()
        self.assertEqual(me["scope"], {"unrestricted": False, "codes": ["MLD"]})

        preview = self.client.get("/api/doc-numbers/preview?dept_code=MLD&date=2026-03-12").get_json()
        self.assertEqual(preview["doc_number"], "REQ/0001/MLD/III/2026")

        parsed = self.client.get("/api/doc-numbers/parse?value=REQ/0042/QC/XII/2025").get_json()
        self.assertEqual((parsed["valid"], parsed["sequence"], parsed["dept_code"]), (True, 42, "QC"))
        self.assertFalse(self.client.get("/api/doc-numbers/parse?value=nonsense").get_json()["valid"])

        departments = self.client.get("/api/departments").get_json()["departments"]
        self.assertIn("QA", {row["code"] for row in departments})

    def test_logout_clears_session(self) -> None:
        self._login("admin@example.com")
        self.assertEqual(self.client.get("/api/me").status_code, 200)
        self.assertEqual(self.client.post("/api/auth/logout").status_code, 200)
        self.assertEqual(self.client.get("/api/me").status_code, 401)


if __name__ == "__main__":
    unittest.main()
