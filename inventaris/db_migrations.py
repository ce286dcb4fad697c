from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask

from inventaris.domain.contracts import (
    ROLE_ADMIN_DEPT,
    ROLE_ADMIN_INDIRECT,
    ROLE_ADMIN_PRODUKSI,
    ROLE_HRGA,
    ROLE_SUPERVISOR,
)


USER_ROLES = (ROLE_ADMIN_PRODUKSI, ROLE_ADMIN_INDIRECT, ROLE_ADMIN_DEPT, ROLE_SUPERVISOR, ROLE_HRGA)


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _normalize_postgres_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


def to_sqlalchemy_url(raw_db_path: str) -> str:
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH belum diatur untuk migrasi.")

    normalized = _normalize_postgres_url(raw)
    if normalized.startswith(("postgresql://", "postgresql+")):
        return normalized
    if normalized.startswith(("sqlite://", "sqlite+pysqlite://")):
        return normalized

    sqlite_path = Path(normalized).expanduser().resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    root = _project_root()
    alembic_ini = root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError("alembic.ini tidak ditemukan di root proyek.")

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str((root / "migrations").as_posix()))
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    return alembic_cfg


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Perintah migrasi skema (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.upgrade(cfg, revision)
        click.echo(f"Migrasi diterapkan sampai {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.downgrade(cfg, revision)
        click.echo(f"Rollback diterapkan sampai {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        cfg = build_alembic_config(app)
        command.current(cfg, verbose=True)

    @db_group.command("init")
    def db_init() -> None:
        """Buat skema langsung tanpa alembic (development)."""
        from inventaris.db import init_db

        init_db()
        click.echo("Skema database siap.")

    @db_group.command("create-user")
    @click.option("--email", required=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--role", required=True, type=click.Choice(USER_ROLES))
    @click.option("--name", "full_name", default=None)
    @click.option("--department", "primary_department", required=True, help="Kode departemen utama, mis. MLD.")
    @click.option("--extra-department", "departments", multiple=True, help="Departemen tambahan (boleh berulang).")
    def db_create_user(email, password, role, full_name, primary_department, departments) -> None:
        """Tambah pengguna beserta penugasan departemennya."""
        from inventaris.db import get_db
        from inventaris.errors import AppError
        from inventaris.ui_strings import error_message

        auth = app.extensions["inventaris"].auth
        try:
            actor = auth.register_user(
                get_db(),
                email=email,
                password=password,
                role=role,
                full_name=full_name,
                primary_department=primary_department.strip().upper(),
                departments=[code.strip().upper() for code in departments],
            )
        except AppError as exc:
            raise click.ClickException(exc.details or error_message(exc.message_key)) from exc
        click.echo(f"Pengguna {actor.id} ({role}) dibuat untuk {', '.join(sorted(actor.assigned_departments))}.")
