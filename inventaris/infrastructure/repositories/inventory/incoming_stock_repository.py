from __future__ import annotations

from inventaris.domain.contracts import IncomingLineInput, IncomingReceipt
from inventaris.infrastructure.repositories.base import BaseRepository


class IncomingStockRepository(BaseRepository):
    def create(self, db, *, po_number: str, incoming_date: str, created_by: str, notes: str | None) -> int:
        cursor = db.execute(
            """
            INSERT INTO incoming_stock (po_number, incoming_date, notes, created_by)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (po_number, incoming_date, notes, created_by),
        )
        return self.returning_value(cursor)

    def add_line(self, db, *, incoming_id: int, item_id: int, quantity: int) -> None:
        db.execute(
            "INSERT INTO incoming_stock_items (incoming_id, item_id, quantity) VALUES (?, ?, ?)",
            (int(incoming_id), int(item_id), int(quantity)),
        )

    def po_number_exists(self, db, po_number: str) -> bool:
        row = db.execute(
            "SELECT 1 AS found FROM incoming_stock WHERE po_number = ? LIMIT 1",
            (po_number,),
        ).fetchone()
        return row is not None

    def get(self, db, incoming_id: int) -> IncomingReceipt | None:
        row = db.execute(
            """
            SELECT id, po_number, incoming_date, notes, created_by
            FROM incoming_stock
            WHERE id = ?
            LIMIT 1
            """,
            (int(incoming_id),),
        ).fetchone()
        if not row:
            return None
        data = dict(row)
        lines = db.execute(
            "SELECT item_id, quantity FROM incoming_stock_items WHERE incoming_id = ? ORDER BY id ASC",
            (int(incoming_id),),
        ).fetchall()
        return IncomingReceipt(
            id=int(data["id"]),
            po_number=data["po_number"],
            incoming_date=str(data["incoming_date"]),
            created_by=data["created_by"],
            notes=data.get("notes"),
            lines=tuple(
                IncomingLineInput(item_id=int(dict(line)["item_id"]), quantity=int(dict(line)["quantity"]))
                for line in lines
            ),
        )
