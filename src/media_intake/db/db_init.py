"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from .db_models import Base

REQUIRED_TABLES = ("entry", "pending_transfer", "processing_job")


def init_db(engine: Engine) -> None:
    """Create tables (no-op for tables that already exist)."""
    Base.metadata.create_all(engine)


def missing_tables(engine: Engine) -> list[str]:
    """Return required tables absent from the connected database."""
    present = set(inspect(engine).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in present]
