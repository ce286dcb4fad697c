from __future__ import annotations

from typing import Any, Iterable

from inventaris.domain.contracts import PickupBatchView
from inventaris.infrastructure.repositories.base import BaseRepository


class BatchRepository(BaseRepository):
    def create(self, db, *, schedule_datetime: str, status: str, created_by: str, created_at: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO pickup_batches (schedule_datetime, status, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (schedule_datetime, status, created_by, created_at, created_at),
        )
        return self.returning_value(cursor)

    def get(self, db, batch_id: int) -> PickupBatchView | None:
        row = db.execute(
            """
            SELECT id, schedule_datetime, status, hrga_signature, created_at
            FROM pickup_batches
            WHERE id = ?
            LIMIT 1
            """,
            (int(batch_id),),
        ).fetchone()
        if not row:
            return None
        return self._to_view(db, dict(row))

    def _to_view(self, db, data: dict) -> PickupBatchView:
        members = db.execute(
            "SELECT id FROM requests WHERE batch_id = ? ORDER BY id ASC",
            (int(data["id"]),),
        ).fetchall()
        return PickupBatchView(
            id=int(data["id"]),
            schedule_datetime=str(data["schedule_datetime"]),
            status=data["status"],
            created_at=str(data["created_at"]),
            request_ids=tuple(int(dict(member)["id"]) for member in members),
            hrga_signature=data.get("hrga_signature"),
        )

    def list(self, db, *, statuses: Iterable[str] | None = None, limit: int = 100) -> list[PickupBatchView]:
        clauses = ["1 = 1"]
        values: list[Any] = []
        if statuses is not None:
            status_list = sorted(set(statuses))
            if not status_list:
                return []
            clauses.append(f"status IN ({self.placeholders(status_list)})")
            values.extend(status_list)
        values.append(int(limit))
        rows = db.execute(
            f"""
            SELECT id, schedule_datetime, status, hrga_signature, created_at
            FROM pickup_batches
            WHERE {" AND ".join(clauses)}
            ORDER BY schedule_datetime DESC, id DESC
            LIMIT ?
            """,
            tuple(values),
        ).fetchall()
        return [self._to_view(db, dict(row)) for row in rows]

    def update_status_if(
        self,
        db,
        batch_id: int,
        *,
        expected_status: str,
        new_status: str,
        updated_at: str,
        fields: dict[str, Any] | None = None,
    ) -> bool:
        extra = dict(fields or {})
        assignments = ["status = ?", "updated_at = ?"] + [f"{key} = ?" for key in extra.keys()]
        params: list[Any] = [new_status, updated_at, *extra.values(), int(batch_id), expected_status]
        cursor = db.execute(
            f"""
            UPDATE pickup_batches
            SET {", ".join(assignments)}
            WHERE id = ? AND status = ?
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0) == 1

    def count_by_status(self, db, status: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM pickup_batches WHERE status = ?",
            (status,),
        ).fetchone()
        return int(dict(row)["total"]) if row else 0

    def open_member_count(self, db, batch_id: int, *, done_status: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM requests WHERE batch_id = ? AND status <> ?",
            (int(batch_id), done_status),
        ).fetchone()
        return int(dict(row)["total"]) if row else 0
