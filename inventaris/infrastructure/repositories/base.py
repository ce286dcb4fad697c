from __future__ import annotations

from typing import Any, Iterable, Sequence


class BaseRepository:
    @staticmethod
    def placeholders(values: Sequence[Any]) -> str:
        return ", ".join("?" for _ in values)

    def build_scope_clause(
        self,
        dept_codes: Iterable[str] | None,
        *,
        table_alias: str | None = None,
        column_name: str = "dept_code",
    ) -> tuple[str, tuple[Any, ...]]:
        """SQL fragment restricting rows to a department scope.

        ``None`` means unrestricted. An empty scope matches nothing, so a
        mis-configured actor sees no rows instead of every row.
        """
        if dept_codes is None:
            return "1 = 1", ()
        codes = tuple(sorted(dept_codes))
        if not codes:
            return "1 = 0", ()
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{column_name} IN ({self.placeholders(codes)})", codes

    @staticmethod
    def returning_value(cursor, column: str = "id") -> int:
        # Drain the cursor so sqlite finishes the statement before commit.
        rows = cursor.fetchall()
        row = rows[0]
        return int(row[column] if isinstance(row, dict) else row[0])
