import unittest
from datetime import datetime, timedelta, timezone

from inventaris.core import BatchCreated, EventBus, RequestApproved, RequestCreated, get_event_bus, reset_event_bus_for_tests
from inventaris.observability import metrics_snapshot, reset_metrics_for_tests


def _created(request_id: int = 1) -> RequestCreated:
    return RequestCreated(
        actor_id="adm-1",
        request_id=request_id,
        doc_number=f"REQ/{request_id:04d}/MLD/III/2026",
        dept_code="MLD",
        requester_id="adm-1",
    )


class EventBusTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()
        reset_event_bus_for_tests()

    def test_handler_execution_order_is_predictable(self) -> None:
        bus = EventBus()
        execution_trace = []
        bus.subscribe(RequestCreated, lambda _event: execution_trace.append("first"))
        bus.subscribe(RequestCreated, lambda _event: execution_trace.append("second"))

        bus.publish(_created())

        self.assertEqual(execution_trace, ["first", "second"])

    def test_handlers_only_see_their_event_type(self) -> None:
        bus = EventBus()
        approved = []
        bus.subscribe(RequestApproved, approved.append)
        bus.publish(_created())
        bus.publish(BatchCreated(actor_id="hrga-1", batch_id=3, schedule_datetime="2026-03-14 08:00:00", request_ids=(1, 2)))
        self.assertEqual(approved, [])

    def test_failing_handler_is_isolated(self) -> None:
        bus = EventBus()
        received = []

        def broken(_event):
            raise RuntimeError("boom")

        bus.subscribe(RequestCreated, broken)
        bus.subscribe(RequestCreated, received.append)

        with self.assertLogs("inventaris", level="ERROR") as logs:
            bus.publish(_created(5))

        self.assertEqual([event.request_id for event in received], [5])
        self.assertTrue(any("event_handler_failed" in line for line in logs.output))

    def test_publish_counts_emitted_events(self) -> None:
        bus = EventBus()
        bus.publish(_created(1))
        bus.publish(_created(2))
        domain_events = metrics_snapshot()["domain_events"]
        self.assertEqual(domain_events["emitted_total"], 2)
        self.assertEqual(domain_events["by_type"], {"RequestCreated": 2})

    def test_event_metadata_is_normalized(self) -> None:
        naive = datetime(2026, 3, 12, 9, 30)
        event = RequestCreated(
            event_id="  ",
            occurred_at=naive,
            actor_id="  adm-1 ",
            request_id=1,
            doc_number="REQ/0001/MLD/III/2026",
            dept_code="MLD",
            requester_id="adm-1",
        )
        self.assertTrue(event.event_id)
        self.assertEqual(event.actor_id, "adm-1")
        self.assertEqual(event.occurred_at.tzinfo, timezone.utc)

        shifted = _created()
        self.assertLess(datetime.now(timezone.utc) - shifted.occurred_at, timedelta(minutes=1))

    def test_default_bus_can_be_cleared(self) -> None:
        bus = get_event_bus()
        bus.subscribe(RequestCreated, lambda _event: None)
        self.assertEqual(bus.handler_count(RequestCreated), 1)
        reset_event_bus_for_tests()
        self.assertEqual(bus.handler_count(RequestCreated), 0)


if __name__ == "__main__":
    unittest.main()
