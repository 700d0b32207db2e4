"""Tiny home-grown migration helpers for SQLite databases."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

LOGGER = logging.getLogger(__name__)

# Additive only: columns introduced after the first release of each table.
ACTIVITY_EVENT_COLUMNS: dict[str, str] = {
    "subject_name": "TEXT",
    "acknowledged_by": "TEXT",
    "acknowledged_at": "TEXT",
    "detail": "TEXT",
    "metadata": "TEXT",
}
TIME_CLOCK_COLUMNS: dict[str, str] = {
    "subject_name": "TEXT",
}


def _column_names(engine: Engine, table: str) -> set[str]:
    """Names of the columns SQLite reports for ``table`` (empty if it is missing)."""

    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()
    return {row["name"] for row in rows}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(
    engine: Engine,
    table: str,
    name: str,
    cols: Iterable[str],
    unique: bool = False,
    where: str | None = None,
) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    where_sql = f" WHERE {where}" if where else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql}){where_sql}"))


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema up to date; a no-op on other engines."""

    if engine.dialect.name != "sqlite":
        return

    for table, needed in (
        ("activity_events", ACTIVITY_EVENT_COLUMNS),
        ("time_clocks", TIME_CLOCK_COLUMNS),
    ):
        existing = _column_names(engine, table)
        if not existing:
            # Table absent; Base.metadata.create_all builds the fresh schema.
            continue
        for name, dtype in needed.items():
            if name not in existing:
                LOGGER.info("migrate.add_column", extra={"extra_data": {"table": table, "column": name}})
                _add_column_sqlite(engine, table, f"{name} {dtype}")

    if _column_names(engine, "time_clocks"):
        _create_index_if_not_exists(
            engine,
            "time_clocks",
            "ix_time_clocks_one_open_per_subject",
            ["subject_id"],
            unique=True,
            where="clock_out IS NULL",
        )
