import unittest

from inventaris.application.notification_service import NotificationService
from inventaris.core.event_bus import EventBus, RequestRejected
from inventaris.errors import NotFoundError
from inventaris.observability import metrics_snapshot, reset_metrics_for_tests
from tests.helpers.inventory_world import InventoryWorld


class _RecordingSink:
    def __init__(self, fail_for=()) -> None:
        self.sent = []
        self.fail_for = set(fail_for)

    def emit(self, user_id: str, message: str, link: str | None) -> None:
        if user_id in self.fail_for:
            raise ConnectionError("push endpoint unreachable")
        self.sent.append((user_id, message, link))


class NotificationFlowTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self.world = InventoryWorld(prefix="notifications")
        self.db = self.world.db
        self.lifecycle = self.world.services.lifecycle
        self.notifications = self.world.services.notifications
        self.admin = self.world.add_user("adm-ind", "admin_indirect", "QC")
        self.spv_qc = self.world.add_user("spv-qc", "supervisor", "QC")
        self.spv_pp = self.world.add_user("spv-pp", "supervisor", "PP")
        self.spv_mld = self.world.add_user("spv-mld", "supervisor", "MLD")
        self.hrga = self.world.add_user("hrga-1", "hrga", "GA")
        self.item = self.world.add_item("CLN-001", 25)

    def tearDown(self) -> None:
        self.world.close()
        reset_metrics_for_tests()

    def _messages(self, user_id: str):
        return [row.message for row in self.notifications.list_for_user(self.db, user_id)]

    def test_new_request_goes_to_supervisors_whose_scope_covers_it(self) -> None:
        request = self.world.create(self.admin, "QA", (self.item, 2))

        expected = f"Request baru {request.doc_number} menunggu approval"
        self.assertEqual(self._messages(self.spv_qc.id), [expected])
        self.assertEqual(self._messages(self.spv_pp.id), [])
        self.assertEqual(self._messages(self.spv_mld.id), [])
        self.assertEqual(self.notifications.list_for_user(self.db, self.spv_qc.id)[0].link, "/dashboard/approvals")

    def test_approval_notifies_requester_and_hrga(self) -> None:
        request = self.world.create(self.admin, "PP", (self.item, 2))
        self.lifecycle.approve_request(self.db, self.spv_pp, request.id)

        self.assertEqual(
            self._messages(self.admin.id),
            [f"Request {request.doc_number} telah disetujui oleh Supervisor"],
        )
        self.assertEqual(self._messages(self.hrga.id), [f"Request {request.doc_number} siap dijadwalkan"])

    def test_rejection_and_hand_over_notify_requester(self) -> None:
        rejected = self.world.create(self.admin, "QC", (self.item, 1))
        self.lifecycle.reject_request(self.db, self.spv_qc, rejected.id, "Stok gudang kosong")
        handed = self.world.create(self.admin, "QC", (self.item, 1))
        self.lifecycle.approve_request(self.db, self.spv_qc, handed.id)
        self.lifecycle.hand_over(self.db, self.hrga, [handed.id])

        messages = self._messages(self.admin.id)
        self.assertIn(f"Request {rejected.doc_number} ditolak: Stok gudang kosong", messages)
        self.assertIn(f"Barang untuk request {handed.doc_number} telah diserahkan", messages)

    def test_read_state(self) -> None:
        self.world.create(self.admin, "QC", (self.item, 1))
        self.world.create(self.admin, "QC", (self.item, 1))
        rows = self.notifications.list_for_user(self.db, self.spv_qc.id)
        self.assertEqual(self.notifications.unread_count(self.db, self.spv_qc.id), 2)

        self.notifications.mark_read(self.db, self.spv_qc.id, rows[0].id)
        self.assertEqual(self.notifications.unread_count(self.db, self.spv_qc.id), 1)
        self.assertEqual(len(self.notifications.list_for_user(self.db, self.spv_qc.id, unread_only=True)), 1)

        with self.assertRaises(NotFoundError):
            self.notifications.mark_read(self.db, self.spv_mld.id, rows[1].id)

        self.assertEqual(self.notifications.mark_all_read(self.db, self.spv_qc.id), 1)
        self.assertEqual(self.notifications.unread_count(self.db, self.spv_qc.id), 0)

    def test_disabled_notifications_leave_the_bus_empty(self) -> None:
        quiet = InventoryWorld(prefix="notifications_off", NOTIFICATIONS_ENABLED=False)
        try:
            self.assertEqual(quiet.bus.handler_count(RequestRejected), 0)
        finally:
            quiet.close()
        self.assertEqual(self.world.bus.handler_count(RequestRejected), 1)


class NotificationSinkFailureTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()

    def test_failing_recipient_does_not_stop_the_others(self) -> None:
        sink = _RecordingSink(fail_for={"u-1"})
        service = NotificationService(sink=sink)
        bus = EventBus()
        service.register_event_handlers(bus)

        delivered = service._deliver(
            "RequestApproved",
            [("u-1", "pesan", None), ("u-2", "pesan", "/x"), ("u-2", "duplikat", "/x"), ("", "kosong", None)],
        )

        self.assertEqual(delivered, 1)
        self.assertEqual(sink.sent, [("u-2", "pesan", "/x")])
        snapshot = metrics_snapshot()["notifications"]
        self.assertEqual(snapshot, {"delivered_total": 1, "failed_total": 1})

    def test_rejection_handler_uses_event_payload_only(self) -> None:
        sink = _RecordingSink()
        service = NotificationService(sink=sink)
        bus = EventBus()
        service.register_event_handlers(bus)

        bus.publish(
            RequestRejected(
                actor_id="spv-1",
                request_id=7,
                doc_number="REQ/0007/MLD/III/2026",
                dept_code="MLD",
                requester_id="adm-1",
                reason="Tidak sesuai anggaran",
            )
        )

        self.assertEqual(
            sink.sent,
            [("adm-1", "Request REQ/0007/MLD/III/2026 ditolak: Tidak sesuai anggaran", "/dashboard/requests/7")],
        )


if __name__ == "__main__":
    unittest.main()
