from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Protocol, Tuple

from inventaris.core.event_bus import (
    BatchCreated,
    BatchReviewed,
    EventBus,
    RequestApproved,
    RequestCreated,
    RequestHandedOver,
    RequestRejected,
)
from inventaris.domain.contracts import (
    BATCH_APPROVED,
    ROLE_HRGA,
    ROLE_SUPERVISOR,
    Notification,
    format_timestamp,
    parse_timestamp,
)
from inventaris.domain.scope import resolve_scope
from inventaris.errors import NotFoundError
from inventaris.infrastructure.repositories.inventory import (
    DepartmentRepository,
    NotificationRepository,
    RequestRepository,
    UserRepository,
)
from inventaris.observability import observe_notification
from inventaris.ui_strings import notification_link, notification_message


LOGGER = logging.getLogger("inventaris.notifications")

Outgoing = Tuple[str, str, str]


class NotificationSink(Protocol):
    def emit(self, user_id: str, message: str, link: str | None) -> None:
        ...


class DatabaseNotificationSink:
    """Writes each notification in its own short transaction."""

    def __init__(
        self,
        db_provider: Callable[[], object],
        repository: NotificationRepository | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._db_provider = db_provider
        self.repository = repository or NotificationRepository()
        self._clock = clock

    def emit(self, user_id: str, message: str, link: str | None) -> None:
        db = self._db_provider()
        with db.transaction():
            self.repository.create(
                db,
                user_id=user_id,
                message=message,
                link=link,
                created_at=format_timestamp(self._clock()),
            )


class NotificationService:
    def __init__(
        self,
        *,
        sink: NotificationSink | None = None,
        db_provider: Callable[[], object] | None = None,
        widening: Mapping[str, Iterable[str]] | None = None,
        users: UserRepository | None = None,
        departments: DepartmentRepository | None = None,
        requests: RequestRepository | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self._db_provider = db_provider
        self.sink = sink or (DatabaseNotificationSink(db_provider) if db_provider else None)
        self.widening = widening
        self.users = users or UserRepository()
        self.departments = departments or DepartmentRepository()
        self.requests = requests or RequestRepository()
        self.notifications = notifications or NotificationRepository()

    def register_event_handlers(self, bus: EventBus) -> None:
        bus.subscribe(RequestCreated, self.on_request_created)
        bus.subscribe(RequestApproved, self.on_request_approved)
        bus.subscribe(RequestRejected, self.on_request_rejected)
        bus.subscribe(BatchCreated, self.on_batch_created)
        bus.subscribe(BatchReviewed, self.on_batch_reviewed)
        bus.subscribe(RequestHandedOver, self.on_request_handed_over)

    def _db(self):
        if self._db_provider is None:
            raise RuntimeError("NotificationService needs a db_provider to resolve recipients.")
        return self._db_provider()

    def _hrga_ids(self) -> List[str]:
        return [actor.id for actor in self.users.list_by_role(self._db(), ROLE_HRGA)]

    def _deliver(self, event_type: str, outgoing: Iterable[Outgoing]) -> int:
        if self.sink is None:
            return 0
        delivered = 0
        seen: set[str] = set()
        for user_id, message, link in outgoing:
            if not user_id or user_id in seen:
                continue
            seen.add(user_id)
            try:
                self.sink.emit(user_id, message, link)
            except Exception:  # noqa: BLE001
                observe_notification(event_type, delivered=False)
                LOGGER.exception(
                    "notification_delivery_failed",
                    extra={"event_type": event_type, "recipient_id": user_id},
                )
                continue
            observe_notification(event_type, delivered=True)
            delivered += 1
        return delivered

    def on_request_created(self, event: RequestCreated) -> None:
        db = self._db()
        departments = self.departments.list_all(db)
        message = notification_message("request_created", doc_number=event.doc_number)
        link = notification_link("approvals")
        recipients = [
            supervisor.id
            for supervisor in self.users.list_by_role(db, ROLE_SUPERVISOR)
            if resolve_scope(supervisor, departments, self.widening).contains(event.dept_code)
        ]
        self._deliver("RequestCreated", [(user_id, message, link) for user_id in recipients])

    def on_request_approved(self, event: RequestApproved) -> None:
        detail_link = notification_link("request_detail", request_id=event.request_id)
        outgoing: List[Outgoing] = [
            (
                event.requester_id,
                notification_message("request_approved", doc_number=event.doc_number),
                detail_link,
            )
        ]
        ready_message = notification_message("request_ready_to_schedule", doc_number=event.doc_number)
        batches_link = notification_link("batches")
        outgoing.extend((user_id, ready_message, batches_link) for user_id in self._hrga_ids())
        self._deliver("RequestApproved", outgoing)

    def on_request_rejected(self, event: RequestRejected) -> None:
        message = notification_message("request_rejected", doc_number=event.doc_number, reason=event.reason)
        link = notification_link("request_detail", request_id=event.request_id)
        self._deliver("RequestRejected", [(event.requester_id, message, link)])

    def on_batch_created(self, event: BatchCreated) -> None:
        message = notification_message(
            "batch_created",
            schedule_date=_display_schedule(event.schedule_datetime),
            request_count=len(event.request_ids),
        )
        link = notification_link("batches")
        self._deliver("BatchCreated", [(user_id, message, link) for user_id in self._hrga_ids()])

    def on_batch_reviewed(self, event: BatchReviewed) -> None:
        key = "batch_approved" if event.status == BATCH_APPROVED else "batch_rejected"
        message = notification_message(key, schedule_date=_display_schedule(event.schedule_datetime))
        db = self._db()
        outgoing: List[Outgoing] = []
        for request_id in event.request_ids:
            request = self.requests.get(db, request_id, with_lines=False)
            if request is None:
                continue
            outgoing.append(
                (request.requester_id, message, notification_link("request_detail", request_id=request.id))
            )
        self._deliver("BatchReviewed", outgoing)

    def on_request_handed_over(self, event: RequestHandedOver) -> None:
        message = notification_message("request_handed_over", doc_number=event.doc_number)
        link = notification_link("request_detail", request_id=event.request_id)
        self._deliver("RequestHandedOver", [(event.requester_id, message, link)])

    def list_for_user(self, db, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        return self.notifications.list_for_user(db, user_id, unread_only=unread_only, limit=limit)

    def unread_count(self, db, user_id: str) -> int:
        return self.notifications.unread_count(db, user_id)

    def mark_read(self, db, user_id: str, notification_id: int) -> None:
        with db.transaction():
            updated = self.notifications.mark_read(db, user_id, notification_id)
        if not updated:
            raise NotFoundError(message_key="notification_not_found", details=f"notification {notification_id}")

    def mark_all_read(self, db, user_id: str) -> int:
        with db.transaction():
            return self.notifications.mark_all_read(db, user_id)


def _display_schedule(value: str) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value)
    return parsed.strftime("%d/%m/%Y %H:%M")
