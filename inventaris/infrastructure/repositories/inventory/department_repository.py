from __future__ import annotations

from inventaris.domain.contracts import Department
from inventaris.infrastructure.repositories.base import BaseRepository


class DepartmentRepository(BaseRepository):
    @staticmethod
    def _to_department(row) -> Department:
        data = dict(row)
        return Department(code=data["code"], name=data["name"], category=data["category"])

    def list_all(self, db) -> list[Department]:
        rows = db.execute(
            """
            SELECT code, name, category
            FROM departments
            ORDER BY category ASC, code ASC
            """
        ).fetchall()
        return [self._to_department(row) for row in rows]

    def get(self, db, code: str) -> Department | None:
        row = db.execute(
            "SELECT code, name, category FROM departments WHERE code = ? LIMIT 1",
            (code,),
        ).fetchone()
        return self._to_department(row) if row else None

    def create(self, db, *, code: str, name: str, category: str) -> Department:
        db.execute(
            "INSERT INTO departments (code, name, category) VALUES (?, ?, ?)",
            (code, name, category),
        )
        return Department(code=code, name=name, category=category)
