import contextlib
import sqlite3
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from inventaris.errors import TransientFailure


DEFAULT_DEPARTMENTS = (
    ("MLD", "Molding", "production"),
    ("PLA", "Plating", "production"),
    ("PA", "Painting 1", "production"),
    ("PB", "Painting 2", "production"),
    ("Assembly", "Assembly", "indirect"),
    ("PP", "Production Planning", "indirect"),
    ("QC", "Quality Control", "indirect"),
    ("QA", "Quality Assurance", "indirect"),
    ("PPIC", "PPIC Logistics", "indirect"),
    ("SALES", "Sales", "other"),
    ("IT", "IT", "other"),
    ("GA", "General Affairs", "other"),
    ("FAC", "Facility", "other"),
)

_TRANSIENT_MARKERS = ("locked", "busy", "unable to open", "timeout", "could not connect", "connection")


def _is_transient(exc: Exception) -> bool:
    if psycopg2 is not None and isinstance(exc, psycopg2.OperationalError):
        return True
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        return any(marker in message for marker in _TRANSIENT_MARKERS)
    return False


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        try:
            if self.backend == "postgres":
                cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                if params:
                    sql = _convert_qmark_to_pg(sql)
                    cursor.execute(sql, list(params))
                else:
                    cursor.execute(sql)
                return cursor
            return self._conn.execute(sql, params or ())
        except Exception as exc:
            if _is_transient(exc):
                raise TransientFailure(details=str(exc)) from exc
            raise

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        try:
            self._conn.commit()
        except Exception as exc:
            if _is_transient(exc):
                raise TransientFailure(details=str(exc)) from exc
            raise

    def rollback(self):
        self._conn.rollback()

    @contextlib.contextmanager
    def transaction(self):
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            try:
                self.commit()
            except BaseException:
                self.rollback()
                raise

    @property
    def greatest(self) -> str:
        # Two-argument max as a scalar SQL function.
        return "GREATEST" if self.backend == "postgres" else "MAX"

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    for ch in sql:
        if ch == "'":
            in_single = not in_single
        if ch == ";" and not in_single:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect(db_path: str, *, timeout: float = 30.0) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 belum terpasang.")
        conn = psycopg2.connect(db_path, connect_timeout=int(timeout))
        conn.autocommit = False
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        timeout = float(current_app.config.get("DB_BUSY_TIMEOUT_SECONDS", 30) or 30)
        g.db = connect(db_path, timeout=timeout)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db(db: Database | None = None):
    db = db or get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)
    _create_indexes(db)
    seed_departments(db)
    db.commit()


def seed_departments(db: Database, departments: Iterable[tuple] = DEFAULT_DEPARTMENTS) -> None:
    for code, name, category in departments:
        db.execute(
            """
            INSERT INTO departments (code, name, category)
            VALUES (?, ?, ?)
            ON CONFLICT (code) DO NOTHING
            """,
            (code, name, category),
        )


def _init_db_sqlite(db: Database):
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS departments (
            code TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'other' CHECK (
                category IN ('production','indirect','other')
            ),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            full_name TEXT,
            role TEXT NOT NULL CHECK (
                role IN ('admin_produksi','admin_indirect','admin_dept','supervisor','hrga')
            ),
            primary_department TEXT REFERENCES departments (code),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS user_departments (
            user_id TEXT NOT NULL REFERENCES users (id),
            dept_code TEXT NOT NULL REFERENCES departments (code),
            is_primary INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (user_id, dept_code)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sku TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            unit TEXT NOT NULL DEFAULT 'pcs',
            current_stock INTEGER NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
            min_stock INTEGER NOT NULL DEFAULT 0 CHECK (min_stock >= 0),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS pickup_batches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            schedule_datetime TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','rejected')
            ),
            hrga_signature TEXT,
            created_by TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            doc_number TEXT NOT NULL UNIQUE,
            requester_id TEXT NOT NULL,
            dept_code TEXT NOT NULL REFERENCES departments (code),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved_spv','rejected','scheduled','completed')
            ),
            rejection_reason TEXT,
            admin_signature TEXT,
            supervisor_signature TEXT,
            batch_id INTEGER REFERENCES pickup_batches (id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK ((status = 'rejected') = (rejection_reason IS NOT NULL AND length(trim(rejection_reason)) > 0)),
            CHECK ((status IN ('scheduled','completed')) = (batch_id IS NOT NULL))
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS request_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id INTEGER NOT NULL REFERENCES requests (id),
            line_no INTEGER NOT NULL,
            item_id INTEGER NOT NULL REFERENCES items (id),
            quantity INTEGER NOT NULL CHECK (quantity > 0)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS doc_sequences (
            dept_code TEXT NOT NULL,
            year INTEGER NOT NULL,
            last_number INTEGER NOT NULL CHECK (last_number > 0),
            PRIMARY KEY (dept_code, year)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            message TEXT NOT NULL,
            link TEXT,
            is_read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS incoming_stock (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            po_number TEXT NOT NULL UNIQUE,
            incoming_date TEXT NOT NULL,
            notes TEXT,
            created_by TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS incoming_stock_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            incoming_id INTEGER NOT NULL REFERENCES incoming_stock (id),
            item_id INTEGER NOT NULL REFERENCES items (id),
            quantity INTEGER NOT NULL CHECK (quantity > 0)
        )
        """
    )


def _init_db_postgres(db: Database) -> None:
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS departments (
            code TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'other' CHECK (
                category IN ('production','indirect','other')
            ),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            full_name TEXT,
            role TEXT NOT NULL CHECK (
                role IN ('admin_produksi','admin_indirect','admin_dept','supervisor','hrga')
            ),
            primary_department TEXT REFERENCES departments (code),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS user_departments (
            user_id TEXT NOT NULL REFERENCES users (id),
            dept_code TEXT NOT NULL REFERENCES departments (code),
            is_primary INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (user_id, dept_code)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS items (
            id SERIAL PRIMARY KEY,
            sku TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            unit TEXT NOT NULL DEFAULT 'pcs',
            current_stock INTEGER NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
            min_stock INTEGER NOT NULL DEFAULT 0 CHECK (min_stock >= 0),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS pickup_batches (
            id SERIAL PRIMARY KEY,
            schedule_datetime TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','rejected')
            ),
            hrga_signature TEXT,
            created_by TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS requests (
            id SERIAL PRIMARY KEY,
            doc_number TEXT NOT NULL UNIQUE,
            requester_id TEXT NOT NULL,
            dept_code TEXT NOT NULL REFERENCES departments (code),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved_spv','rejected','scheduled','completed')
            ),
            rejection_reason TEXT,
            admin_signature TEXT,
            supervisor_signature TEXT,
            batch_id INTEGER REFERENCES pickup_batches (id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK ((status = 'rejected') = (rejection_reason IS NOT NULL AND length(trim(rejection_reason)) > 0)),
            CHECK ((status IN ('scheduled','completed')) = (batch_id IS NOT NULL))
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS request_items (
            id SERIAL PRIMARY KEY,
            request_id INTEGER NOT NULL REFERENCES requests (id),
            line_no INTEGER NOT NULL,
            item_id INTEGER NOT NULL REFERENCES items (id),
            quantity INTEGER NOT NULL CHECK (quantity > 0)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS doc_sequences (
            dept_code TEXT NOT NULL,
            year INTEGER NOT NULL,
            last_number INTEGER NOT NULL CHECK (last_number > 0),
            PRIMARY KEY (dept_code, year)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id TEXT NOT NULL,
            message TEXT NOT NULL,
            link TEXT,
            is_read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS incoming_stock (
            id SERIAL PRIMARY KEY,
            po_number TEXT NOT NULL UNIQUE,
            incoming_date TEXT NOT NULL,
            notes TEXT,
            created_by TEXT NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS incoming_stock_items (
            id SERIAL PRIMARY KEY,
            incoming_id INTEGER NOT NULL REFERENCES incoming_stock (id),
            item_id INTEGER NOT NULL REFERENCES items (id),
            quantity INTEGER NOT NULL CHECK (quantity > 0)
        )
        """
    )


def _create_indexes(db: Database) -> None:
    db.execute("CREATE INDEX IF NOT EXISTS idx_requests_status_dept ON requests (status, dept_code)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_requests_batch ON requests (batch_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_request_items_request ON request_items (request_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, is_read)")
