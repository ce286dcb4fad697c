from __future__ import annotations

import os
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool


config = context.config

if config.config_file_name is not None:
    # In-process upgrades (flask db upgrade, tests) must not silence the app loggers.
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Schema is hand-written SQL in inventaris.db; there is no ORM metadata to diff against.
target_metadata = None


def _normalize_sqlalchemy_url(raw_value: str) -> str:
    value = (raw_value or "").strip()
    if not value:
        raise RuntimeError("URL database belum diatur untuk Alembic.")
    if value.startswith("postgres://"):
        value = "postgresql://" + value[len("postgres://") :]
    if "://" in value:
        return value
    return f"sqlite:///{Path(value).expanduser().resolve().as_posix()}"


def _database_url() -> str:
    # DATABASE_URL wins over alembic.ini, matching inventaris.config.Config.
    env_url = os.environ.get("DATABASE_URL") or os.environ.get("DB_PATH")
    return _normalize_sqlalchemy_url(env_url or config.get_main_option("sqlalchemy.url"))


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _database_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool, future=True)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
