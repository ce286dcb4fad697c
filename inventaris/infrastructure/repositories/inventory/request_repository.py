from __future__ import annotations

from typing import Any, Iterable

from inventaris.domain.contracts import RequestLine, RequestView
from inventaris.infrastructure.repositories.base import BaseRepository


_SELECT_REQUEST = """
    SELECT
        r.id,
        r.doc_number,
        r.requester_id,
        r.dept_code,
        r.status,
        r.rejection_reason,
        r.admin_signature,
        r.supervisor_signature,
        r.batch_id,
        r.created_at,
        r.updated_at,
        COALESCE(u.full_name, u.email) AS requester_name,
        d.name AS department_name
    FROM requests r
    LEFT JOIN users u ON u.id = r.requester_id
    LEFT JOIN departments d ON d.code = r.dept_code
"""


class RequestRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        doc_number: str,
        requester_id: str,
        dept_code: str,
        status: str,
        created_at: str,
        admin_signature: str | None = None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO requests (
                doc_number, requester_id, dept_code, status, admin_signature, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (doc_number, requester_id, dept_code, status, admin_signature, created_at, created_at),
        )
        return self.returning_value(cursor)

    def add_line(self, db, *, request_id: int, line_no: int, item_id: int, quantity: int) -> None:
        db.execute(
            """
            INSERT INTO request_items (request_id, line_no, item_id, quantity)
            VALUES (?, ?, ?, ?)
            """,
            (int(request_id), int(line_no), int(item_id), int(quantity)),
        )

    def lines_for(self, db, request_ids: Iterable[int]) -> dict[int, list[RequestLine]]:
        ids = sorted({int(request_id) for request_id in request_ids})
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT ri.request_id, ri.item_id, ri.quantity, i.name AS item_name, i.sku, i.unit
            FROM request_items ri
            LEFT JOIN items i ON i.id = ri.item_id
            WHERE ri.request_id IN ({self.placeholders(ids)})
            ORDER BY ri.request_id ASC, ri.line_no ASC
            """,
            tuple(ids),
        ).fetchall()
        grouped: dict[int, list[RequestLine]] = {request_id: [] for request_id in ids}
        for row in rows:
            data = dict(row)
            grouped[int(data["request_id"])].append(
                RequestLine(
                    item_id=int(data["item_id"]),
                    quantity=int(data["quantity"]),
                    item_name=data.get("item_name") or "",
                    sku=data.get("sku") or "",
                    unit=data.get("unit") or "",
                )
            )
        return grouped

    @staticmethod
    def _to_view(data: dict, lines: Iterable[RequestLine] = ()) -> RequestView:
        batch_id = data.get("batch_id")
        return RequestView(
            id=int(data["id"]),
            doc_number=data["doc_number"],
            requester_id=data["requester_id"],
            dept_code=data["dept_code"],
            status=data["status"],
            created_at=str(data["created_at"]),
            updated_at=str(data["updated_at"]),
            rejection_reason=data.get("rejection_reason"),
            admin_signature=data.get("admin_signature"),
            supervisor_signature=data.get("supervisor_signature"),
            batch_id=int(batch_id) if batch_id is not None else None,
            requester_name=data.get("requester_name"),
            department_name=data.get("department_name"),
            items=tuple(lines),
        )

    def get(self, db, request_id: int, *, with_lines: bool = True) -> RequestView | None:
        row = db.execute(f"{_SELECT_REQUEST} WHERE r.id = ? LIMIT 1", (int(request_id),)).fetchone()
        if not row:
            return None
        data = dict(row)
        lines = self.lines_for(db, [data["id"]]).get(int(data["id"]), []) if with_lines else []
        return self._to_view(data, lines)

    def list(
        self,
        db,
        *,
        dept_codes: Iterable[str] | None = None,
        statuses: Iterable[str] | None = None,
        batch_id: int | None = None,
        unbatched_only: bool = False,
        oldest_first: bool = False,
        limit: int = 200,
    ) -> list[RequestView]:
        scope_sql, params = self.build_scope_clause(dept_codes, table_alias="r")
        clauses = [scope_sql]
        values: list[Any] = list(params)
        if statuses is not None:
            status_list = sorted(set(statuses))
            if not status_list:
                return []
            clauses.append(f"r.status IN ({self.placeholders(status_list)})")
            values.extend(status_list)
        if batch_id is not None:
            clauses.append("r.batch_id = ?")
            values.append(int(batch_id))
        if unbatched_only:
            clauses.append("r.batch_id IS NULL")
        order = "ASC" if oldest_first else "DESC"
        values.append(int(limit))
        rows = db.execute(
            f"""
            {_SELECT_REQUEST}
            WHERE {" AND ".join(clauses)}
            ORDER BY r.created_at {order}, r.id {order}
            LIMIT ?
            """,
            tuple(values),
        ).fetchall()
        records = [dict(row) for row in rows]
        lines = self.lines_for(db, [record["id"] for record in records])
        return [self._to_view(record, lines.get(int(record["id"]), [])) for record in records]

    def update_status_if(
        self,
        db,
        request_id: int,
        *,
        expected_status: str,
        new_status: str,
        updated_at: str,
        fields: dict[str, Any] | None = None,
    ) -> bool:
        """Conditional status write; False when the row is no longer in ``expected_status``."""
        extra = dict(fields or {})
        assignments = ["status = ?", "updated_at = ?"] + [f"{key} = ?" for key in extra.keys()]
        params: list[Any] = [new_status, updated_at, *extra.values(), int(request_id), expected_status]
        cursor = db.execute(
            f"""
            UPDATE requests
            SET {", ".join(assignments)}
            WHERE id = ? AND status = ?
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0) == 1

    def assign_batch(
        self,
        db,
        request_ids: Iterable[int],
        *,
        batch_id: int,
        expected_status: str,
        new_status: str,
        updated_at: str,
    ) -> int:
        ids = sorted({int(request_id) for request_id in request_ids})
        if not ids:
            return 0
        cursor = db.execute(
            f"""
            UPDATE requests
            SET status = ?, batch_id = ?, updated_at = ?
            WHERE id IN ({self.placeholders(ids)}) AND status = ? AND batch_id IS NULL
            """,
            (new_status, int(batch_id), updated_at, *ids, expected_status),
        )
        return int(cursor.rowcount or 0)

    def set_admin_signature_if(self, db, request_id: int, *, expected_status: str, signature: str, updated_at: str) -> bool:
        cursor = db.execute(
            """
            UPDATE requests
            SET admin_signature = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (signature, updated_at, int(request_id), expected_status),
        )
        return int(cursor.rowcount or 0) == 1

    def statuses_for(self, db, request_ids: Iterable[int]) -> dict[int, dict]:
        ids = sorted({int(request_id) for request_id in request_ids})
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT id, status, batch_id, dept_code
            FROM requests
            WHERE id IN ({self.placeholders(ids)})
            """,
            tuple(ids),
        ).fetchall()
        return {int(dict(row)["id"]): dict(row) for row in rows}

    def count_by_status(self, db, *, dept_codes: Iterable[str] | None = None) -> dict[str, int]:
        scope_sql, params = self.build_scope_clause(dept_codes)
        rows = db.execute(
            f"""
            SELECT status, COUNT(*) AS total
            FROM requests
            WHERE {scope_sql}
            GROUP BY status
            """,
            params,
        ).fetchall()
        return {dict(row)["status"]: int(dict(row)["total"]) for row in rows}
