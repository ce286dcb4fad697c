from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from inventaris.domain.contracts import (
    ROLE_HRGA,
    Actor,
    IncomingLineInput,
    IncomingReceipt,
    Item,
    format_timestamp,
    parse_timestamp,
)
from inventaris.errors import NotFoundError, UserActionError, ValidationError
from inventaris.infrastructure.repositories.inventory import IncomingStockRepository, ItemRepository
from inventaris.policies import require_roles


LOGGER = logging.getLogger("inventaris.stock")

_EDITABLE_FIELDS = ("sku", "name", "unit", "current_stock", "min_stock")


def _non_negative_int(value: object, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message_key="stock_invalid", details=f"{field} must be an integer") from None
    if isinstance(value, bool) or number < 0:
        raise ValidationError(message_key="stock_invalid", details=f"{field} must not be negative")
    return number


class StockService:
    """Item master data and incoming receipts. HRGA only."""

    def __init__(self, *, items: ItemRepository | None = None, incoming: IncomingStockRepository | None = None) -> None:
        self.items = items or ItemRepository()
        self.incoming = incoming or IncomingStockRepository()

    def list_items(self, db) -> List[Item]:
        return self.items.list_all(db)

    def low_stock_items(self, db) -> List[Item]:
        return self.items.list_low_stock(db)

    def get_item(self, db, item_id: int) -> Item:
        item = self.items.get(db, item_id)
        if item is None:
            raise NotFoundError(message_key="item_not_found", details=f"item {item_id}")
        return item

    def create_item(
        self,
        db,
        actor: Actor,
        *,
        sku: str,
        name: str,
        unit: str = "pcs",
        current_stock: int = 0,
        min_stock: int = 0,
    ) -> Item:
        require_roles(actor, ROLE_HRGA)
        sku_value = str(sku or "").strip()
        name_value = str(name or "").strip()
        if not sku_value or not name_value:
            raise ValidationError(details="sku and name are required")
        if self.items.get_by_sku(db, sku_value) is not None:
            raise ValidationError(code="sku_duplicate", message_key="sku_duplicate", http_status=409)
        with db.transaction():
            item_id = self.items.create(
                db,
                sku=sku_value,
                name=name_value,
                unit=str(unit or "pcs").strip() or "pcs",
                current_stock=_non_negative_int(current_stock, "current_stock"),
                min_stock=_non_negative_int(min_stock, "min_stock"),
            )
        LOGGER.info("item_created", extra={"item_id": item_id, "sku": sku_value, "actor_id": actor.id})
        return self.get_item(db, item_id)

    def update_item(self, db, actor: Actor, item_id: int, changes: Dict[str, Any]) -> Item:
        require_roles(actor, ROLE_HRGA)
        existing = self.get_item(db, item_id)
        fields: Dict[str, Any] = {}
        for key in _EDITABLE_FIELDS:
            if key not in changes:
                continue
            value = changes[key]
            if key in {"current_stock", "min_stock"}:
                fields[key] = _non_negative_int(value, key)
            else:
                text = str(value or "").strip()
                if not text:
                    raise ValidationError(details=f"{key} must not be empty")
                fields[key] = text
        sku_value = fields.get("sku")
        if sku_value and sku_value != existing.sku:
            other = self.items.get_by_sku(db, sku_value)
            if other is not None and other.id != existing.id:
                raise ValidationError(code="sku_duplicate", message_key="sku_duplicate", http_status=409)
        with db.transaction():
            self.items.update_fields(db, existing.id, fields)
        LOGGER.info("item_updated", extra={"item_id": existing.id, "fields": sorted(fields), "actor_id": actor.id})
        return self.get_item(db, existing.id)

    def delete_item(self, db, actor: Actor, item_id: int) -> None:
        require_roles(actor, ROLE_HRGA)
        existing = self.get_item(db, item_id)
        if self.items.is_referenced(db, existing.id):
            raise UserActionError(code="item_in_use", message_key="item_in_use", http_status=409)
        with db.transaction():
            self.items.delete(db, existing.id)
        LOGGER.info("item_deleted", extra={"item_id": existing.id, "actor_id": actor.id})

    def record_incoming(
        self,
        db,
        actor: Actor,
        *,
        po_number: str,
        incoming_date: str | date | datetime | None,
        lines: Iterable[IncomingLineInput],
        notes: str | None = None,
    ) -> IncomingReceipt:
        """Store a purchase-order receipt and add its quantities to stock."""
        require_roles(actor, ROLE_HRGA)
        po_value = str(po_number or "").strip()
        if not po_value:
            raise ValidationError(message_key="po_number_required")
        received = parse_timestamp(incoming_date)
        if received is None:
            raise ValidationError(details="incoming_date is required")

        merged: "OrderedDict[int, int]" = OrderedDict()
        for line in lines or ():
            quantity = _non_negative_int(line.quantity, "quantity")
            if quantity == 0:
                raise ValidationError(message_key="quantity_invalid")
            try:
                item_id = int(line.item_id)
            except (TypeError, ValueError):
                raise ValidationError(message_key="item_not_found", details=f"invalid item id {line.item_id!r}") from None
            merged[item_id] = merged.get(item_id, 0) + quantity
        if not merged:
            raise ValidationError(message_key="items_required")
        known = self.items.get_many(db, merged.keys())
        missing = [item_id for item_id in merged if item_id not in known]
        if missing:
            raise ValidationError(message_key="item_not_found", payload={"item_ids": missing})
        if self.incoming.po_number_exists(db, po_value):
            raise ValidationError(code="po_number_duplicate", message_key="po_number_duplicate", http_status=409)

        with db.transaction():
            incoming_id = self.incoming.create(
                db,
                po_number=po_value,
                incoming_date=format_timestamp(received),
                created_by=actor.id,
                notes=str(notes).strip() if notes else None,
            )
            for item_id, quantity in merged.items():
                self.incoming.add_line(db, incoming_id=incoming_id, item_id=item_id, quantity=quantity)
                self.items.increment(db, item_id, quantity)
        LOGGER.info(
            "incoming_recorded",
            extra={"incoming_id": incoming_id, "po_number": po_value, "lines": len(merged), "actor_id": actor.id},
        )
        return self.incoming.get(db, incoming_id)
