from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, List, Mapping, TypeVar

from inventaris.domain.contracts import (
    BATCH_PENDING,
    ROLE_SUPERVISOR,
    STATUS_APPROVED_SPV,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_SCHEDULED,
    Actor,
    DashboardStats,
    RequestView,
)
from inventaris.domain.request_state import REQUEST_STATUSES
from inventaris.domain.scope import DepartmentScope, resolve_scope
from inventaris.errors import NotFoundError, TransientFailure, ValidationError
from inventaris.infrastructure.repositories.inventory import (
    BatchRepository,
    DepartmentRepository,
    ItemRepository,
    RequestRepository,
)


LOGGER = logging.getLogger("inventaris.queries")

T = TypeVar("T")


class RequestQueryService:
    """Scoped read side. Reads are retried on transient database failures."""

    def __init__(
        self,
        *,
        widening: Mapping[str, Iterable[str]] | None = None,
        retry_attempts: int = 3,
        retry_backoff_ms: int = 100,
        sleep: Callable[[float], None] = time.sleep,
        departments: DepartmentRepository | None = None,
        requests: RequestRepository | None = None,
        items: ItemRepository | None = None,
        batches: BatchRepository | None = None,
    ) -> None:
        self.widening = widening
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_backoff_ms = max(0, int(retry_backoff_ms))
        self._sleep = sleep
        self.departments = departments or DepartmentRepository()
        self.requests = requests or RequestRepository()
        self.items = items or ItemRepository()
        self.batches = batches or BatchRepository()

    def _read(self, db, reader: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return reader()
            except TransientFailure:
                db.rollback()
                if attempt >= self.retry_attempts:
                    raise
                LOGGER.warning("read_retry", extra={"attempt": attempt, "max_attempts": self.retry_attempts})
                self._sleep(self.retry_backoff_ms * attempt / 1000.0)
                attempt += 1

    def resolve_scope(self, db, actor: Actor) -> DepartmentScope:
        return self._read(db, lambda: resolve_scope(actor, self.departments.list_all(db), self.widening))

    def list_requests(self, db, actor: Actor, *, status: str | None = None, limit: int = 200) -> List[RequestView]:
        if status is not None and status not in REQUEST_STATUSES:
            raise ValidationError(details=f"unknown status {status!r}")
        scope = self.resolve_scope(db, actor)
        return self._read(
            db,
            lambda: self.requests.list(
                db,
                dept_codes=scope.as_filter(),
                statuses=[status] if status else None,
                limit=limit,
            ),
        )

    def get_request(self, db, actor: Actor, request_id: int) -> RequestView:
        scope = self.resolve_scope(db, actor)
        request = self._read(db, lambda: self.requests.get(db, request_id))
        # Out-of-scope rows look exactly like missing ones.
        if request is None or not scope.contains(request.dept_code):
            raise NotFoundError(message_key="request_not_found", details=f"request {request_id}")
        return request

    def pending_approvals(self, db, actor: Actor) -> List[RequestView]:
        if actor.role != ROLE_SUPERVISOR:
            return []
        return self.list_requests(db, actor, status=STATUS_PENDING)

    def dashboard_stats(self, db, actor: Actor) -> DashboardStats:
        scope = self.resolve_scope(db, actor)
        counts = self._read(db, lambda: self.requests.count_by_status(db, dept_codes=scope.as_filter()))
        low_stock = self._read(db, lambda: self.items.count_low_stock(db))
        pending_batches = self._read(db, lambda: self.batches.count_by_status(db, BATCH_PENDING))
        return DashboardStats(
            pending_requests=counts.get(STATUS_PENDING, 0),
            approved_requests=counts.get(STATUS_APPROVED_SPV, 0),
            rejected_requests=counts.get(STATUS_REJECTED, 0),
            scheduled_requests=counts.get(STATUS_SCHEDULED, 0),
            completed_requests=counts.get(STATUS_COMPLETED, 0),
            low_stock_items=low_stock,
            pending_batches=pending_batches,
        )
