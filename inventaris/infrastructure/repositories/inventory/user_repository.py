from __future__ import annotations

from typing import Iterable

from inventaris.domain.contracts import Actor
from inventaris.infrastructure.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    def create_user(
        self,
        db,
        *,
        user_id: str,
        email: str,
        password_hash: str,
        role: str,
        full_name: str | None = None,
        primary_department: str | None = None,
        departments: Iterable[str] = (),
    ) -> None:
        db.execute(
            """
            INSERT INTO users (id, email, password_hash, full_name, role, primary_department)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, email, password_hash, full_name, role, primary_department),
        )
        codes = set(departments)
        if primary_department:
            codes.add(primary_department)
        for code in sorted(codes):
            db.execute(
                """
                INSERT INTO user_departments (user_id, dept_code, is_primary)
                VALUES (?, ?, ?)
                """,
                (user_id, code, 1 if code == primary_department else 0),
            )

    def get_by_id(self, db, user_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash, full_name, role, primary_department
            FROM users
            WHERE id = ?
            LIMIT 1
            """,
            (user_id,),
        ).fetchone()
        return dict(row) if row else None

    def get_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash, full_name, role, primary_department
            FROM users
            WHERE lower(email) = lower(?)
            LIMIT 1
            """,
            (email,),
        ).fetchone()
        return dict(row) if row else None

    def departments_for(self, db, user_id: str) -> frozenset[str]:
        rows = db.execute(
            "SELECT dept_code FROM user_departments WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return frozenset(dict(row)["dept_code"] for row in rows)

    def _to_actor(self, db, row: dict) -> Actor:
        return Actor(
            id=row["id"],
            role=row["role"],
            departments=self.departments_for(db, row["id"]),
            primary_department=row.get("primary_department"),
            display_name=row.get("full_name") or row.get("email"),
        )

    def load_actor(self, db, user_id: str) -> Actor | None:
        row = self.get_by_id(db, user_id)
        return self._to_actor(db, row) if row else None

    def list_by_role(self, db, role: str) -> list[Actor]:
        rows = db.execute(
            """
            SELECT id, email, full_name, role, primary_department
            FROM users
            WHERE role = ?
            ORDER BY id ASC
            """,
            (role,),
        ).fetchall()
        return [self._to_actor(db, dict(row)) for row in rows]
