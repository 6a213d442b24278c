"""Dialect-aware ``INSERT ... ON CONFLICT DO NOTHING``."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from campus.db.base import Base


async def insert_ignore(
    db: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """Insert a row unless it collides on ``index_elements``.

    The unique constraint decides, so concurrent identical inserts cannot both
    succeed. Returns True if a row was inserted.
    """
    dialect = db.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = await db.execute(stmt)
    return bool(result.rowcount)
