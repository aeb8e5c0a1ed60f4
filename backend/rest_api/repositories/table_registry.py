"""
Table Registry - read-only lookups of active tables by static id.

Used from async code through ``asyncio.to_thread``: each call opens its
own short-lived session from the factory, so it is safe from any thread.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from rest_api.models import DiningTable


@dataclass(frozen=True)
class TableRecord:
    """Detached snapshot of a registry row."""

    id: int
    static_id: str
    name: str


class TableRegistry:
    """Resolves printed static ids to active tables."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def find_active_tables(self) -> list[TableRecord]:
        """All active tables, for bulk cache loads."""
        with self._session_factory() as db:
            rows = db.scalars(
                select(DiningTable).where(DiningTable.is_active.is_(True))
            ).all()
            return [TableRecord(id=r.id, static_id=r.static_id, name=r.name) for r in rows]

    def find_active_table_by_static_id(self, static_id: str) -> TableRecord | None:
        with self._session_factory() as db:
            row = db.scalar(
                select(DiningTable).where(
                    DiningTable.static_id == static_id,
                    DiningTable.is_active.is_(True),
                )
            )
            if row is None:
                return None
            return TableRecord(id=row.id, static_id=row.static_id, name=row.name)
