import unittest

from inventaris.application.query_service import RequestQueryService
from inventaris.errors import NotFoundError, TransientFailure, ValidationError
from inventaris.infrastructure.repositories.inventory import RequestRepository
from tests.helpers.inventory_world import InventoryWorld


class _FlakyRequests(RequestRepository):
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def list(self, db, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientFailure(details="database is locked")
        return super().list(db, **kwargs)


class RequestQueryServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.world = InventoryWorld(prefix="query_service")
        self.db = self.world.db
        self.queries = self.world.services.queries
        self.admin = self.world.add_user("adm-prod", "admin_produksi", "MLD")
        self.admin_ind = self.world.add_user("adm-ind", "admin_indirect", "QC")
        self.spv_mld = self.world.add_user("spv-mld", "supervisor", "MLD")
        self.spv_qc = self.world.add_user("spv-qc", "supervisor", "QC")
        self.hrga = self.world.add_user("hrga-1", "hrga", "GA")
        self.item = self.world.add_item("ATK-001", 3, min_stock=5)
        self.mld = self.world.create(self.admin, "MLD", (self.item, 1))
        self.pla = self.world.create(self.admin, "PLA", (self.item, 1))
        self.qa = self.world.create(self.admin_ind, "QA", (self.item, 1))

    def tearDown(self) -> None:
        self.world.close()

    def test_listing_is_scoped(self) -> None:
        self.assertEqual({row.id for row in self.queries.list_requests(self.db, self.spv_mld)}, {self.mld.id})
        self.assertEqual({row.id for row in self.queries.list_requests(self.db, self.spv_qc)}, {self.qa.id})
        self.assertEqual(
            {row.id for row in self.queries.list_requests(self.db, self.admin)},
            {self.mld.id, self.pla.id},
        )
        self.assertEqual(len(self.queries.list_requests(self.db, self.hrga)), 3)

    def test_status_filter(self) -> None:
        self.world.services.lifecycle.approve_request(self.db, self.spv_mld, self.mld.id)
        approved = self.queries.list_requests(self.db, self.hrga, status="approved_spv")
        self.assertEqual([row.id for row in approved], [self.mld.id])
        with self.assertRaises(ValidationError):
            self.queries.list_requests(self.db, self.hrga, status="archived")

    def test_out_of_scope_request_looks_missing(self) -> None:
        self.assertEqual(self.queries.get_request(self.db, self.spv_qc, self.qa.id).doc_number, self.qa.doc_number)
        with self.assertRaises(NotFoundError):
            self.queries.get_request(self.db, self.spv_qc, self.mld.id)
        with self.assertRaises(NotFoundError):
            self.queries.get_request(self.db, self.hrga, 999)

    def test_pending_approvals_are_for_supervisors_only(self) -> None:
        self.assertEqual([row.id for row in self.queries.pending_approvals(self.db, self.spv_mld)], [self.mld.id])
        self.assertEqual(self.queries.pending_approvals(self.db, self.hrga), [])

    def test_dashboard_stats(self) -> None:
        self.world.services.lifecycle.reject_request(self.db, self.spv_mld, self.mld.id, "Tidak perlu")
        stats = self.queries.dashboard_stats(self.db, self.admin).to_dict()
        self.assertEqual(stats["pending_requests"], 1)
        self.assertEqual(stats["rejected_requests"], 1)
        self.assertEqual(stats["low_stock_items"], 1)
        self.assertEqual(stats["pending_batches"], 0)

    def test_transient_read_failures_are_retried(self) -> None:
        sleeps = []
        flaky = _FlakyRequests(failures=2)
        service = RequestQueryService(retry_attempts=3, retry_backoff_ms=10, sleep=sleeps.append, requests=flaky)

        rows = service.list_requests(self.db, self.hrga)

        self.assertEqual(len(rows), 3)
        self.assertEqual(flaky.calls, 3)
        self.assertEqual(sleeps, [0.01, 0.02])

    def test_retry_budget_is_bounded(self) -> None:
        flaky = _FlakyRequests(failures=5)
        service = RequestQueryService(retry_attempts=2, retry_backoff_ms=0, sleep=lambda _s: None, requests=flaky)
        with self.assertRaises(TransientFailure):
            service.list_requests(self.db, self.hrga)
        self.assertEqual(flaky.calls, 2)


if __name__ == "__main__":
    unittest.main()
