from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping

from inventaris.application.auth_service import AuthService
from inventaris.application.batch_service import BatchScheduler
from inventaris.application.lifecycle_service import RequestLifecycleService
from inventaris.application.notification_service import NotificationService
from inventaris.application.query_service import RequestQueryService
from inventaris.application.stock_service import StockService
from inventaris.core.event_bus import EventBus
from inventaris.domain.scope import parse_widening


@dataclass
class Services:
    event_bus: EventBus
    lifecycle: RequestLifecycleService
    batches: BatchScheduler
    queries: RequestQueryService
    stock: StockService
    notifications: NotificationService
    auth: AuthService


def build_services(
    config: Mapping,
    *,
    db_provider: Callable[[], object],
    event_bus: EventBus | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Services:
    """Wire the services of one application instance around its own event bus."""
    bus = event_bus or EventBus()
    widening = parse_widening(config.get("SCOPE_WIDENING"))
    notifications = NotificationService(db_provider=db_provider, widening=widening)
    if bool(config.get("NOTIFICATIONS_ENABLED", True)):
        notifications.register_event_handlers(bus)
    return Services(
        event_bus=bus,
        lifecycle=RequestLifecycleService(event_bus=bus, widening=widening, clock=clock),
        batches=BatchScheduler(event_bus=bus, clock=clock),
        queries=RequestQueryService(
            widening=widening,
            retry_attempts=int(config.get("DB_READ_RETRY_ATTEMPTS", 3) or 1),
            retry_backoff_ms=int(config.get("DB_READ_RETRY_BACKOFF_MS", 100) or 0),
        ),
        stock=StockService(),
        notifications=notifications,
        auth=AuthService(),
    )
