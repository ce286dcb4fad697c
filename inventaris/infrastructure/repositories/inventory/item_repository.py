from __future__ import annotations

from typing import Any, Iterable

from inventaris.domain.contracts import Item
from inventaris.infrastructure.repositories.base import BaseRepository


_ITEM_COLUMNS = "id, sku, name, unit, current_stock, min_stock"


class ItemRepository(BaseRepository):
    @staticmethod
    def _to_item(row) -> Item:
        data = dict(row)
        return Item(
            id=int(data["id"]),
            sku=data["sku"],
            name=data["name"],
            unit=data["unit"],
            current_stock=int(data["current_stock"]),
            min_stock=int(data["min_stock"]),
        )

    def create(self, db, *, sku: str, name: str, unit: str, current_stock: int, min_stock: int) -> int:
        cursor = db.execute(
            """
            INSERT INTO items (sku, name, unit, current_stock, min_stock)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (sku, name, unit, int(current_stock), int(min_stock)),
        )
        return self.returning_value(cursor)

    def get(self, db, item_id: int) -> Item | None:
        row = db.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ? LIMIT 1",
            (int(item_id),),
        ).fetchone()
        return self._to_item(row) if row else None

    def get_by_sku(self, db, sku: str) -> Item | None:
        row = db.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE sku = ? LIMIT 1",
            (sku,),
        ).fetchone()
        return self._to_item(row) if row else None

    def get_many(self, db, item_ids: Iterable[int]) -> dict[int, Item]:
        ids = sorted({int(item_id) for item_id in item_ids})
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id IN ({self.placeholders(ids)})",
            tuple(ids),
        ).fetchall()
        items = [self._to_item(row) for row in rows]
        return {item.id: item for item in items}

    def list_all(self, db) -> list[Item]:
        rows = db.execute(f"SELECT {_ITEM_COLUMNS} FROM items ORDER BY name ASC, id ASC").fetchall()
        return [self._to_item(row) for row in rows]

    def list_low_stock(self, db) -> list[Item]:
        rows = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM items
            WHERE current_stock <= min_stock
            ORDER BY current_stock ASC, name ASC
            """
        ).fetchall()
        return [self._to_item(row) for row in rows]

    def count_low_stock(self, db) -> int:
        row = db.execute("SELECT COUNT(*) AS total FROM items WHERE current_stock <= min_stock").fetchone()
        return int(dict(row)["total"]) if row else 0

    def update_fields(self, db, item_id: int, fields: dict[str, Any]) -> None:
        if not fields:
            return
        updates = [f"{key} = ?" for key in fields.keys()]
        params = list(fields.values())
        params.append(int(item_id))
        db.execute(
            f"""
            UPDATE items
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            tuple(params),
        )

    def delete(self, db, item_id: int) -> None:
        db.execute("DELETE FROM items WHERE id = ?", (int(item_id),))

    def is_referenced(self, db, item_id: int) -> bool:
        row = db.execute(
            """
            SELECT 1 AS used FROM request_items WHERE item_id = ?
            UNION ALL
            SELECT 1 AS used FROM incoming_stock_items WHERE item_id = ?
            LIMIT 1
            """,
            (int(item_id), int(item_id)),
        ).fetchone()
        return row is not None

    def decrement_clamped(self, db, item_id: int, quantity: int) -> int | None:
        """Subtract ``quantity`` from stock, never going below zero.

        Returns the stock level seen just before the update (``None`` when the
        item no longer exists). The subtraction itself is one statement so
        concurrent hand-overs of the same item cannot lose updates.
        """
        lock = " FOR UPDATE" if db.backend == "postgres" else ""
        row = db.execute(
            f"SELECT current_stock FROM items WHERE id = ?{lock}",
            (int(item_id),),
        ).fetchone()
        if row is None:
            return None
        db.execute(
            f"""
            UPDATE items
            SET current_stock = {db.greatest}(0, current_stock - ?), updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (int(quantity), int(item_id)),
        )
        return int(dict(row)["current_stock"])

    def increment(self, db, item_id: int, quantity: int) -> bool:
        cursor = db.execute(
            """
            UPDATE items
            SET current_stock = current_stock + ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (int(quantity), int(item_id)),
        )
        return int(cursor.rowcount or 0) == 1
