"""Dialect-specific INSERT constructs.

Postgres runs in production and SQLite in the test suite. Both support
``ON CONFLICT`` upserts with the same SQLAlchemy API, so callers only need the
right ``insert`` factory for the bound engine.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """Return an INSERT for ``model`` that supports ``on_conflict_do_*``."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    msg = f"Upserts are not supported on {dialect}"
    raise RuntimeError(msg)
