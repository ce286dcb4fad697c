from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Iterable, List

from inventaris.core.event_bus import BatchCreated, BatchReviewed, EventBus, get_event_bus
from inventaris.domain.contracts import (
    BATCH_APPROVED,
    BATCH_PENDING,
    BATCH_REJECTED,
    ROLE_HRGA,
    STATUS_APPROVED_SPV,
    Actor,
    PickupBatchView,
    RequestView,
    format_timestamp,
    parse_timestamp,
)
from inventaris.domain.request_state import EVENT_SCHEDULE, assert_transition
from inventaris.errors import InvalidMembershipError, InvalidStateTransition, NotFoundError, ValidationError
from inventaris.infrastructure.repositories.inventory import BatchRepository, RequestRepository
from inventaris.observability import observe_request_transition
from inventaris.policies import require_roles


LOGGER = logging.getLogger("inventaris.batches")


def _schedule_text(value: str | date | datetime | None) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValidationError(message_key="schedule_required", details=f"invalid schedule {value!r}")
    return format_timestamp(parsed)


class BatchScheduler:
    def __init__(
        self,
        *,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
        batches: BatchRepository | None = None,
        requests: RequestRepository | None = None,
    ) -> None:
        self.event_bus = event_bus or get_event_bus()
        self._clock = clock
        self.batches = batches or BatchRepository()
        self.requests = requests or RequestRepository()

    def _get(self, db, batch_id: int) -> PickupBatchView:
        batch = self.batches.get(db, batch_id)
        if batch is None:
            raise NotFoundError(message_key="batch_not_found", details=f"batch {batch_id}")
        return batch

    def list_schedulable(self, db, actor: Actor) -> List[RequestView]:
        require_roles(actor, ROLE_HRGA)
        return self.requests.list(db, statuses=[STATUS_APPROVED_SPV], unbatched_only=True, oldest_first=True)

    def list_batches(self, db, actor: Actor, *, status: str | None = None) -> List[PickupBatchView]:
        require_roles(actor, ROLE_HRGA)
        return self.batches.list(db, statuses=[status] if status else None)

    def get_batch(self, db, actor: Actor, batch_id: int) -> PickupBatchView:
        require_roles(actor, ROLE_HRGA)
        return self._get(db, batch_id)

    def create_batch(
        self,
        db,
        actor: Actor,
        request_ids: Iterable[object],
        schedule_datetime: str | date | datetime | None,
    ) -> PickupBatchView:
        """Group approved requests into one pickup batch, all or nothing.

        Every member must be ``approved_spv`` and not yet in a batch. Any
        offender fails the whole call with :class:`InvalidMembershipError` and
        no request is touched.
        """
        require_roles(actor, ROLE_HRGA)
        ids: List[int] = []
        for raw in request_ids or ():
            try:
                request_id = int(raw)
            except (TypeError, ValueError):
                raise ValidationError(message_key="request_ids_required", details=f"invalid request id {raw!r}") from None
            if request_id not in ids:
                ids.append(request_id)
        if not ids:
            raise ValidationError(message_key="request_ids_required")
        schedule = _schedule_text(schedule_datetime)

        current = self.requests.statuses_for(db, ids)
        offenders = [
            request_id
            for request_id in ids
            if request_id not in current
            or current[request_id]["status"] != STATUS_APPROVED_SPV
            or current[request_id]["batch_id"] is not None
        ]
        if offenders:
            self._refuse(actor, offenders, current)

        now = format_timestamp(self._clock())
        with db.transaction():
            batch_id = self.batches.create(
                db,
                schedule_datetime=schedule,
                status=BATCH_PENDING,
                created_by=actor.id,
                created_at=now,
            )
            assigned = self.requests.assign_batch(
                db,
                ids,
                batch_id=batch_id,
                expected_status=STATUS_APPROVED_SPV,
                new_status=assert_transition(STATUS_APPROVED_SPV, EVENT_SCHEDULE),
                updated_at=now,
            )
            if assigned != len(ids):
                # Someone moved a member between the check and the write.
                self._refuse(actor, ids, self.requests.statuses_for(db, ids), lost_race=True)

        for _ in ids:
            observe_request_transition(EVENT_SCHEDULE, "applied")
        LOGGER.info(
            "batch_created",
            extra={"batch_id": batch_id, "request_ids": ids, "schedule_datetime": schedule, "actor_id": actor.id},
        )
        self.event_bus.publish(
            BatchCreated(actor_id=actor.id, batch_id=batch_id, schedule_datetime=schedule, request_ids=tuple(ids))
        )
        return self._get(db, batch_id)

    def _refuse(self, actor: Actor, offenders: List[int], current: dict, *, lost_race: bool = False) -> None:
        details = [
            {
                "request_id": request_id,
                "status": (current.get(request_id) or {}).get("status"),
                "batch_id": (current.get(request_id) or {}).get("batch_id"),
            }
            for request_id in offenders
        ]
        observe_request_transition(EVENT_SCHEDULE, "refused")
        LOGGER.warning(
            "batch_membership_refused",
            extra={"actor_id": actor.id, "offenders": details, "lost_race": lost_race},
        )
        raise InvalidMembershipError(
            details=f"requests not schedulable: {[item['request_id'] for item in details]}",
            payload={"offenders": details},
        )

    def review_batch(
        self,
        db,
        actor: Actor,
        batch_id: int,
        approved: bool,
        *,
        schedule_datetime: str | date | datetime | None = None,
        signature: str | None = None,
    ) -> PickupBatchView:
        require_roles(actor, ROLE_HRGA)
        batch = self._get(db, batch_id)
        new_status = BATCH_APPROVED if approved else BATCH_REJECTED
        if batch.status != BATCH_PENDING:
            raise InvalidStateTransition(from_status=batch.status, event="review_batch")

        fields: dict = {}
        if schedule_datetime:
            fields["schedule_datetime"] = _schedule_text(schedule_datetime)
        if signature:
            fields["hrga_signature"] = str(signature).strip()
        with db.transaction():
            applied = self.batches.update_status_if(
                db,
                batch.id,
                expected_status=BATCH_PENDING,
                new_status=new_status,
                updated_at=format_timestamp(self._clock()),
                fields=fields,
            )
            if not applied:
                current = self.batches.get(db, batch.id)
                raise InvalidStateTransition(from_status=current.status if current else None, event="review_batch")

        reviewed = self._get(db, batch.id)
        LOGGER.info(
            "batch_reviewed",
            extra={"batch_id": batch.id, "status": new_status, "actor_id": actor.id},
        )
        self.event_bus.publish(
            BatchReviewed(
                actor_id=actor.id,
                batch_id=reviewed.id,
                status=new_status,
                schedule_datetime=reviewed.schedule_datetime,
                request_ids=reviewed.request_ids,
            )
        )
        return reviewed
