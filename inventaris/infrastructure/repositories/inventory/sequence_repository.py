from __future__ import annotations

from inventaris.infrastructure.repositories.base import BaseRepository


class SequenceRepository(BaseRepository):
    """Per ``(dept_code, year)`` document counters."""

    def next_sequence(self, db, dept_code: str, year: int) -> int:
        # One statement: the row lock taken by the upsert serializes
        # concurrent callers, so no two of them read the same value.
        cursor = db.execute(
            """
            INSERT INTO doc_sequences (dept_code, year, last_number)
            VALUES (?, ?, 1)
            ON CONFLICT (dept_code, year)
            DO UPDATE SET last_number = doc_sequences.last_number + 1
            RETURNING last_number
            """,
            (dept_code, int(year)),
        )
        return self.returning_value(cursor, "last_number")

    def current_value(self, db, dept_code: str, year: int) -> int | None:
        row = db.execute(
            "SELECT last_number FROM doc_sequences WHERE dept_code = ? AND year = ? LIMIT 1",
            (dept_code, int(year)),
        ).fetchone()
        return int(dict(row)["last_number"]) if row else None
