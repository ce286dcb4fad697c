"""Inventory request schema

Revision ID: 20261016_000001
Revises:
Create Date: 2026-10-16 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from inventaris.db import (
    _convert_qmark_to_pg,
    _create_indexes,
    _init_db_postgres,
    _init_db_sqlite,
    seed_departments,
)


# revision identifiers, used by Alembic.
revision: str = "20261016_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Reverse dependency order.
_TABLES = (
    "incoming_stock_items",
    "incoming_stock",
    "notifications",
    "doc_sequences",
    "request_items",
    "requests",
    "pickup_batches",
    "items",
    "user_departments",
    "users",
    "departments",
)


class _MigrationDb:
    """Just enough of inventaris.db.Database for the DDL helpers."""

    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return self._connection.exec_driver_sql(sql)
        if self.backend == "postgres":
            sql = _convert_qmark_to_pg(sql)
        return self._connection.exec_driver_sql(sql, tuple(params))


def _backend(connection: Connection) -> str:
    return "postgres" if (connection.dialect.name or "").lower().startswith("postgres") else "sqlite"


def upgrade() -> None:
    connection = op.get_bind()
    db = _MigrationDb(connection, _backend(connection))
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)
    _create_indexes(db)
    seed_departments(db)


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
