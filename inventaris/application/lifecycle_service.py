from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

from inventaris.core.event_bus import (
    EventBus,
    RequestApproved,
    RequestCreated,
    RequestHandedOver,
    RequestRejected,
    get_event_bus,
)
from inventaris.domain.contracts import (
    BATCH_APPROVED,
    BATCH_PENDING,
    ROLE_HRGA,
    ROLE_SUPERVISOR,
    STATUS_APPROVED_SPV,
    STATUS_COMPLETED,
    STATUS_PENDING,
    Actor,
    BulkFailure,
    BulkResult,
    RequestLineInput,
    RequestView,
    StockShortfall,
    format_timestamp,
)
from inventaris.domain.doc_number import format_doc_number
from inventaris.domain.request_state import (
    EVENT_APPROVE,
    EVENT_HAND_OVER,
    EVENT_REJECT,
    EVENT_SIGN,
    SIGNABLE_STATUSES,
    assert_transition,
)
from inventaris.domain.scope import DepartmentScope, resolve_scope
from inventaris.errors import (
    AppError,
    EmptyItemsError,
    EmptyReasonError,
    InvalidStateTransition,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from inventaris.infrastructure.repositories.inventory import (
    BatchRepository,
    DepartmentRepository,
    ItemRepository,
    RequestRepository,
    SequenceRepository,
)
from inventaris.observability import (
    observe_doc_number_allocated,
    observe_request_transition,
    observe_stock_shortfall,
)
from inventaris.policies import ADMIN_ROLES, require_roles


LOGGER = logging.getLogger("inventaris.lifecycle")


def _positive_int(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError(message_key="quantity_invalid", details=f"invalid quantity {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message_key="quantity_invalid", details=f"invalid quantity {value!r}") from None
    if number != value and not isinstance(value, str):
        raise ValidationError(message_key="quantity_invalid", details=f"invalid quantity {value!r}")
    if number <= 0:
        raise ValidationError(message_key="quantity_invalid", details=f"quantity must be positive, got {value!r}")
    return number


def merge_lines(lines: Iterable[RequestLineInput]) -> List[Tuple[int, int]]:
    """Validate lines and fold repeated items into one line, first occurrence first."""
    merged: "OrderedDict[int, int]" = OrderedDict()
    for line in lines:
        try:
            item_id = int(line.item_id)
        except (TypeError, ValueError):
            raise ValidationError(message_key="item_not_found", details=f"invalid item id {line.item_id!r}") from None
        quantity = _positive_int(line.quantity)
        merged[item_id] = merged.get(item_id, 0) + quantity
    if not merged:
        raise EmptyItemsError()
    return list(merged.items())


def _unique_ids(request_ids: Iterable[object]) -> List[int]:
    seen: "OrderedDict[int, None]" = OrderedDict()
    for raw in request_ids or ():
        try:
            seen[int(raw)] = None
        except (TypeError, ValueError):
            raise ValidationError(message_key="request_ids_required", details=f"invalid request id {raw!r}") from None
    if not seen:
        raise ValidationError(message_key="request_ids_required")
    return list(seen.keys())


class RequestLifecycleService:
    """Create, approve, reject, sign and hand over requests.

    Every transition is applied with an optimistic precondition on the current
    status, committed, and only then published on the event bus. Bulk calls are
    best-effort: each request runs in its own transaction and failures are
    reported per request in a :class:`BulkResult`.
    """

    def __init__(
        self,
        *,
        event_bus: EventBus | None = None,
        widening: Mapping[str, Iterable[str]] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        departments: DepartmentRepository | None = None,
        items: ItemRepository | None = None,
        requests: RequestRepository | None = None,
        batches: BatchRepository | None = None,
        sequences: SequenceRepository | None = None,
    ) -> None:
        self.event_bus = event_bus or get_event_bus()
        self.widening = widening
        self._clock = clock
        self.departments = departments or DepartmentRepository()
        self.items = items or ItemRepository()
        self.requests = requests or RequestRepository()
        self.batches = batches or BatchRepository()
        self.sequences = sequences or SequenceRepository()

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def resolve_scope(self, db, actor: Actor) -> DepartmentScope:
        return resolve_scope(actor, self.departments.list_all(db), self.widening)

    def _load(self, db, request_id: int, *, with_lines: bool = False) -> RequestView:
        request = self.requests.get(db, request_id, with_lines=with_lines)
        if request is None:
            raise NotFoundError(message_key="request_not_found", details=f"request {request_id}")
        return request

    def _require_in_scope(self, db, actor: Actor, dept_code: str) -> None:
        if not self.resolve_scope(db, actor).contains(dept_code):
            raise UnauthorizedError(details=f"department {dept_code} is outside the actor's scope")

    def _log_transition(self, actor: Actor, request: RequestView, event: str, to_status: str) -> None:
        observe_request_transition(event, "applied")
        LOGGER.info(
            "request_transition",
            extra={
                "entity_id": request.id,
                "doc_number": request.doc_number,
                "event": event,
                "from_status": request.status,
                "to_status": to_status,
                "actor_id": actor.id,
            },
        )

    def _log_refused(self, actor: Actor, request_id: int, event: str, error: AppError) -> None:
        observe_request_transition(event, "refused")
        LOGGER.warning(
            "request_transition_refused",
            extra={
                "entity_id": request_id,
                "event": event,
                "error_code": error.code,
                "actor_id": actor.id,
                "details": error.details,
            },
        )

    def _current_status(self, db, request_id: int) -> str | None:
        row = self.requests.statuses_for(db, [request_id]).get(int(request_id))
        return row["status"] if row else None

    def _lost_race(self, db, request: RequestView, event: str) -> InvalidStateTransition:
        return InvalidStateTransition(
            from_status=self._current_status(db, request.id) or request.status,
            event=event,
        )

    # -- create ---------------------------------------------------------

    def _prepare_create(self, db, actor: Actor, dept_code: str, lines: Iterable[RequestLineInput]) -> List[Tuple[int, int]]:
        code = str(dept_code or "").strip()
        if not code:
            raise ValidationError(message_key="department_required")
        if self.departments.get(db, code) is None:
            raise ValidationError(message_key="department_not_found", details=f"department {code}")
        self._require_in_scope(db, actor, code)
        merged = merge_lines(lines)
        known = self.items.get_many(db, [item_id for item_id, _ in merged])
        missing = [item_id for item_id, _ in merged if item_id not in known]
        if missing:
            raise ValidationError(
                message_key="item_not_found",
                details=f"unknown items {missing}",
                payload={"item_ids": missing},
            )
        return merged

    def _insert_request(
        self,
        db,
        actor: Actor,
        dept_code: str,
        lines: Sequence[Tuple[int, int]],
        created: datetime,
        admin_signature: str | None,
    ) -> Tuple[int, str]:
        sequence = self.sequences.next_sequence(db, dept_code, created.year)
        doc_number = format_doc_number(sequence, dept_code, created.month, created.year)
        request_id = self.requests.create(
            db,
            doc_number=doc_number,
            requester_id=actor.id,
            dept_code=dept_code,
            status=STATUS_PENDING,
            created_at=format_timestamp(created),
            admin_signature=admin_signature or None,
        )
        for line_no, (item_id, quantity) in enumerate(lines, start=1):
            self.requests.add_line(db, request_id=request_id, line_no=line_no, item_id=item_id, quantity=quantity)
        return request_id, doc_number

    def _created_at(self, request_date: date | datetime | None) -> datetime:
        if request_date is None:
            return self._clock()
        if isinstance(request_date, datetime):
            return request_date
        now = self._clock()
        return datetime(request_date.year, request_date.month, request_date.day, now.hour, now.minute, now.second)

    def _announce_created(self, db, actor: Actor, created: List[Tuple[int, str, str]]) -> List[RequestView]:
        views = []
        for request_id, doc_number, dept_code in created:
            observe_doc_number_allocated()
            observe_request_transition("create", "applied")
            LOGGER.info(
                "request_created",
                extra={
                    "entity_id": request_id,
                    "doc_number": doc_number,
                    "dept_code": dept_code,
                    "actor_id": actor.id,
                },
            )
            self.event_bus.publish(
                RequestCreated(
                    actor_id=actor.id,
                    request_id=request_id,
                    doc_number=doc_number,
                    dept_code=dept_code,
                    requester_id=actor.id,
                )
            )
            views.append(self._load(db, request_id, with_lines=True))
        return views

    def create_request(
        self,
        db,
        actor: Actor,
        dept_code: str,
        items: Iterable[RequestLineInput],
        *,
        request_date: date | datetime | None = None,
        admin_signature: str | None = None,
    ) -> RequestView:
        require_roles(actor, *ADMIN_ROLES)
        code = str(dept_code or "").strip()
        merged = self._prepare_create(db, actor, code, items)
        created = self._created_at(request_date)
        with db.transaction():
            request_id, doc_number = self._insert_request(db, actor, code, merged, created, admin_signature)
        return self._announce_created(db, actor, [(request_id, doc_number, code)])[0]

    def create_requests_by_department(
        self,
        db,
        actor: Actor,
        lines: Iterable[RequestLineInput],
        *,
        default_dept_code: str | None = None,
        request_date: date | datetime | None = None,
        admin_signature: str | None = None,
    ) -> List[RequestView]:
        """Split one submission into one request per line department.

        Lines without a department fall back to ``default_dept_code``. Either
        every request is created or none is.
        """
        require_roles(actor, *ADMIN_ROLES)
        grouped: "OrderedDict[str, List[RequestLineInput]]" = OrderedDict()
        for line in lines or ():
            code = str(line.dept_code or default_dept_code or "").strip()
            if not code:
                raise ValidationError(message_key="department_required")
            grouped.setdefault(code, []).append(line)
        if not grouped:
            raise EmptyItemsError()

        prepared = [(code, self._prepare_create(db, actor, code, group)) for code, group in grouped.items()]
        created_at = self._created_at(request_date)
        created: List[Tuple[int, str, str]] = []
        with db.transaction():
            for code, merged in prepared:
                request_id, doc_number = self._insert_request(db, actor, code, merged, created_at, admin_signature)
                created.append((request_id, doc_number, code))
        return self._announce_created(db, actor, created)

    # -- supervisor decisions ---------------------------------------------

    def _decide(self, db, actor: Actor, request_id: int, event: str, fields: Dict[str, object]) -> RequestView:
        try:
            request = self._load(db, request_id)
            self._require_in_scope(db, actor, request.dept_code)
            target = assert_transition(request.status, event)
            with db.transaction():
                applied = self.requests.update_status_if(
                    db,
                    request.id,
                    expected_status=request.status,
                    new_status=target,
                    updated_at=self._now(),
                    fields=fields,
                )
                if not applied:
                    raise self._lost_race(db, request, event)
        except AppError as exc:
            self._log_refused(actor, request_id, event, exc)
            raise
        self._log_transition(actor, request, event, target)
        return request

    def approve_request(self, db, actor: Actor, request_id: int, *, signature: str | None = None) -> RequestView:
        require_roles(actor, ROLE_SUPERVISOR)
        fields: Dict[str, object] = {}
        if signature:
            fields["supervisor_signature"] = signature
        request = self._decide(db, actor, request_id, EVENT_APPROVE, fields)
        self.event_bus.publish(
            RequestApproved(
                actor_id=actor.id,
                request_id=request.id,
                doc_number=request.doc_number,
                dept_code=request.dept_code,
                requester_id=request.requester_id,
            )
        )
        return self._load(db, request.id, with_lines=True)

    def reject_request(self, db, actor: Actor, request_id: int, reason: str) -> RequestView:
        require_roles(actor, ROLE_SUPERVISOR)
        cleaned = str(reason or "").strip()
        if not cleaned:
            raise EmptyReasonError()
        request = self._decide(db, actor, request_id, EVENT_REJECT, {"rejection_reason": cleaned})
        self.event_bus.publish(
            RequestRejected(
                actor_id=actor.id,
                request_id=request.id,
                doc_number=request.doc_number,
                dept_code=request.dept_code,
                requester_id=request.requester_id,
                reason=cleaned,
            )
        )
        return self._load(db, request.id, with_lines=True)

    def _bulk(self, request_ids: Iterable[object], operation: Callable[[int], object]) -> BulkResult:
        result = BulkResult()
        for request_id in _unique_ids(request_ids):
            try:
                operation(request_id)
            except AppError as exc:
                result.failed.append(BulkFailure(request_id=request_id, error=exc.code, message=exc.user_message()))
                continue
            result.succeeded.append(request_id)
        return result

    def approve_requests_bulk(
        self,
        db,
        actor: Actor,
        request_ids: Iterable[object],
        *,
        signature: str | None = None,
    ) -> BulkResult:
        require_roles(actor, ROLE_SUPERVISOR)
        return self._bulk(request_ids, lambda rid: self.approve_request(db, actor, rid, signature=signature))

    def reject_requests_bulk(self, db, actor: Actor, request_ids: Iterable[object], reason: str) -> BulkResult:
        require_roles(actor, ROLE_SUPERVISOR)
        if not str(reason or "").strip():
            raise EmptyReasonError()
        return self._bulk(request_ids, lambda rid: self.reject_request(db, actor, rid, reason))

    # -- requester signature ------------------------------------------------

    def sign_request(self, db, actor: Actor, request_id: int, signature: str) -> RequestView:
        require_roles(actor, *ADMIN_ROLES)
        cleaned = str(signature or "").strip()
        if not cleaned:
            raise ValidationError(message_key="signature_required")
        request = self._load(db, request_id)
        self._require_in_scope(db, actor, request.dept_code)
        if request.status not in SIGNABLE_STATUSES:
            raise InvalidStateTransition(from_status=request.status, event=EVENT_SIGN)
        with db.transaction():
            applied = self.requests.set_admin_signature_if(
                db,
                request.id,
                expected_status=request.status,
                signature=cleaned,
                updated_at=self._now(),
            )
            if not applied:
                raise self._lost_race(db, request, EVENT_SIGN)
        LOGGER.info("request_signed", extra={"entity_id": request.id, "actor_id": actor.id})
        return self._load(db, request.id, with_lines=True)

    # -- hand-over ----------------------------------------------------------

    def _hand_over_one(self, db, actor: Actor, request_id: int) -> List[StockShortfall]:
        try:
            request = self._load(db, request_id, with_lines=True)
            assert_transition(request.status, EVENT_HAND_OVER)
            # The batch review outcome is informational; it never gates hand-over.
            batch = self.batches.get(db, request.batch_id) if request.batch_id is not None else None

            now = self._now()
            shortfalls: List[StockShortfall] = []
            with db.transaction():
                batch_id = request.batch_id
                if request.status == STATUS_APPROVED_SPV:
                    # Direct hand-over still needs a batch so completed rows keep their batch_id.
                    batch_id = self.batches.create(
                        db,
                        schedule_datetime=now,
                        status=BATCH_APPROVED,
                        created_by=actor.id,
                        created_at=now,
                    )
                applied = self.requests.update_status_if(
                    db,
                    request.id,
                    expected_status=request.status,
                    new_status=STATUS_COMPLETED,
                    updated_at=now,
                    fields={"batch_id": batch_id},
                )
                if not applied:
                    raise self._lost_race(db, request, EVENT_HAND_OVER)
                for line in request.items:
                    available = self.items.decrement_clamped(db, line.item_id, line.quantity)
                    if available is not None and line.quantity > available:
                        shortfalls.append(
                            StockShortfall(item_id=line.item_id, requested=line.quantity, available=available)
                        )
                if batch is not None and batch.status == BATCH_PENDING:
                    if self.batches.open_member_count(db, batch.id, done_status=STATUS_COMPLETED) == 0:
                        self.batches.update_status_if(
                            db,
                            batch.id,
                            expected_status=BATCH_PENDING,
                            new_status=BATCH_APPROVED,
                            updated_at=now,
                        )
        except AppError as exc:
            self._log_refused(actor, request_id, EVENT_HAND_OVER, exc)
            raise

        self._log_transition(actor, request, EVENT_HAND_OVER, STATUS_COMPLETED)
        if shortfalls:
            observe_stock_shortfall(len(shortfalls))
            LOGGER.warning(
                "stock_shortfall_clamped",
                extra={
                    "entity_id": request.id,
                    "doc_number": request.doc_number,
                    "shortfalls": [
                        {"item_id": s.item_id, "requested": s.requested, "available": s.available}
                        for s in shortfalls
                    ],
                },
            )
        self.event_bus.publish(
            RequestHandedOver(
                actor_id=actor.id,
                request_id=request.id,
                doc_number=request.doc_number,
                dept_code=request.dept_code,
                requester_id=request.requester_id,
                batch_id=int(batch_id),
            )
        )
        return shortfalls

    def hand_over(self, db, actor: Actor, request_ids: Iterable[object]) -> BulkResult:
        require_roles(actor, ROLE_HRGA)
        result = BulkResult()
        for request_id in _unique_ids(request_ids):
            try:
                shortfalls = self._hand_over_one(db, actor, request_id)
            except AppError as exc:
                result.failed.append(BulkFailure(request_id=request_id, error=exc.code, message=exc.user_message()))
                continue
            result.succeeded.append(request_id)
            if shortfalls:
                result.stock_shortfalls[request_id] = shortfalls
        return result
