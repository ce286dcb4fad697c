from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Tuple

from inventaris.ui_strings import status_label


ROLE_ADMIN_PRODUKSI = "admin_produksi"
ROLE_ADMIN_INDIRECT = "admin_indirect"
ROLE_ADMIN_DEPT = "admin_dept"
ROLE_SUPERVISOR = "supervisor"
ROLE_HRGA = "hrga"

STATUS_PENDING = "pending"
STATUS_APPROVED_SPV = "approved_spv"
STATUS_REJECTED = "rejected"
STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"

BATCH_PENDING = "pending"
BATCH_APPROVED = "approved"
BATCH_REJECTED = "rejected"


@dataclass(frozen=True)
class Department:
    code: str
    name: str
    category: str = "other"


@dataclass(frozen=True)
class Actor:
    """Authenticated principal passed explicitly into every core call."""

    id: str
    role: str
    departments: FrozenSet[str] = frozenset()
    primary_department: str | None = None
    display_name: str | None = None

    @property
    def assigned_departments(self) -> FrozenSet[str]:
        codes = set(self.departments)
        if self.primary_department:
            codes.add(self.primary_department)
        return frozenset(codes)


@dataclass(frozen=True)
class Item:
    id: int
    sku: str
    name: str
    unit: str
    current_stock: int
    min_stock: int = 0

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock


@dataclass(frozen=True)
class RequestLineInput:
    item_id: int
    quantity: int
    dept_code: str | None = None


@dataclass(frozen=True)
class RequestLine:
    item_id: int
    quantity: int
    item_name: str = ""
    sku: str = ""
    unit: str = ""


@dataclass(frozen=True)
class RequestView:
    id: int
    doc_number: str
    requester_id: str
    dept_code: str
    status: str
    created_at: str
    updated_at: str
    rejection_reason: str | None = None
    admin_signature: str | None = None
    supervisor_signature: str | None = None
    batch_id: int | None = None
    requester_name: str | None = None
    department_name: str | None = None
    items: Tuple[RequestLine, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doc_number": self.doc_number,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "dept_code": self.dept_code,
            "department_name": self.department_name,
            "status": self.status,
            "status_label": status_label("request", self.status),
            "rejection_reason": self.rejection_reason,
            "admin_signature": self.admin_signature,
            "supervisor_signature": self.supervisor_signature,
            "batch_id": self.batch_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "items": [
                {
                    "item_id": line.item_id,
                    "item_name": line.item_name,
                    "sku": line.sku,
                    "unit": line.unit,
                    "quantity": line.quantity,
                }
                for line in self.items
            ],
        }


@dataclass(frozen=True)
class PickupBatchView:
    id: int
    schedule_datetime: str
    status: str
    created_at: str
    request_ids: Tuple[int, ...] = ()
    hrga_signature: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "schedule_datetime": self.schedule_datetime,
            "status": self.status,
            "status_label": status_label("batch", self.status),
            "hrga_signature": self.hrga_signature,
            "created_at": self.created_at,
            "request_ids": list(self.request_ids),
        }


@dataclass(frozen=True)
class Notification:
    id: int
    user_id: str
    message: str
    link: str | None
    is_read: bool
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "link": self.link,
            "is_read": self.is_read,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class StockShortfall:
    item_id: int
    requested: int
    available: int


@dataclass(frozen=True)
class BulkFailure:
    request_id: int
    error: str
    message: str


@dataclass
class BulkResult:
    succeeded: List[int] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)
    stock_shortfalls: Dict[int, List[StockShortfall]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": [
                {"request_id": failure.request_id, "error": failure.error, "message": failure.message}
                for failure in self.failed
            ],
            "stock_shortfalls": {
                str(request_id): [
                    {"item_id": s.item_id, "requested": s.requested, "available": s.available}
                    for s in shortfalls
                ]
                for request_id, shortfalls in self.stock_shortfalls.items()
            },
        }


@dataclass(frozen=True)
class IncomingLineInput:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class IncomingReceipt:
    id: int
    po_number: str
    incoming_date: str
    created_by: str
    notes: str | None = None
    lines: Tuple[IncomingLineInput, ...] = ()


@dataclass(frozen=True)
class DashboardStats:
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    scheduled_requests: int
    completed_requests: int
    low_stock_items: int
    pending_batches: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "pending_requests": self.pending_requests,
            "approved_requests": self.approved_requests,
            "rejected_requests": self.rejected_requests,
            "scheduled_requests": self.scheduled_requests,
            "completed_requests": self.completed_requests,
            "low_stock_items": self.low_stock_items,
            "pending_batches": self.pending_batches,
        }


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: date | datetime) -> str:
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return datetime(value.year, value.month, value.day).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str | date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00").replace("T", " "))
    except ValueError:
        return None
