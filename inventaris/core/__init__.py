from inventaris.core.event_bus import (
    BatchCreated,
    BatchReviewed,
    DomainEvent,
    EventBus,
    RequestApproved,
    RequestCreated,
    RequestHandedOver,
    RequestRejected,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "RequestCreated",
    "RequestApproved",
    "RequestRejected",
    "BatchCreated",
    "BatchReviewed",
    "RequestHandedOver",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
