from __future__ import annotations

from typing import Dict, FrozenSet, List, Tuple

from inventaris.domain.contracts import (
    STATUS_APPROVED_SPV,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_SCHEDULED,
)
from inventaris.errors import InvalidStateTransition


EVENT_APPROVE = "approve"
EVENT_REJECT = "reject"
EVENT_SCHEDULE = "schedule"
EVENT_HAND_OVER = "hand_over"
EVENT_SIGN = "sign"

REQUEST_STATUSES: Tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_APPROVED_SPV,
    STATUS_REJECTED,
    STATUS_SCHEDULED,
    STATUS_COMPLETED,
)

# (from_status, event) -> to_status
TRANSITIONS: Dict[Tuple[str, str], str] = {
    (STATUS_PENDING, EVENT_APPROVE): STATUS_APPROVED_SPV,
    (STATUS_PENDING, EVENT_REJECT): STATUS_REJECTED,
    (STATUS_APPROVED_SPV, EVENT_SCHEDULE): STATUS_SCHEDULED,
    (STATUS_SCHEDULED, EVENT_HAND_OVER): STATUS_COMPLETED,
    (STATUS_APPROVED_SPV, EVENT_HAND_OVER): STATUS_COMPLETED,
}

# Signing does not move the request; it is only allowed while still pending.
SIGNABLE_STATUSES: FrozenSet[str] = frozenset({STATUS_PENDING})

TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    status for status in REQUEST_STATUSES if not any(src == status for src, _ in TRANSITIONS)
)


def next_status(from_status: str, event: str) -> str | None:
    return TRANSITIONS.get((from_status, event))


def can_transition(from_status: str, event: str) -> bool:
    return (from_status, event) in TRANSITIONS


def assert_transition(from_status: str, event: str) -> str:
    target = next_status(from_status, event)
    if target is None:
        raise InvalidStateTransition(from_status=from_status, event=event)
    return target


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed_events(status: str) -> List[str]:
    return [evt for (src, evt) in TRANSITIONS if src == status]
