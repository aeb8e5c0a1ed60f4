"""
Session Audit Log - append-only store of check-in attempts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from rest_api.models import TableSessionLog


@dataclass(frozen=True)
class SessionAuditEvent:
    token: str
    table_id: str
    action: str
    ip: str
    user_agent: str
    result: str


class SessionAuditLog:
    """
    Writes and aggregates TableSessionLog rows.

    Each call opens and commits its own session; callers run it in a
    worker thread.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def append(self, event: SessionAuditEvent) -> None:
        with self._session_factory() as db:
            db.add(
                TableSessionLog(
                    token=event.token,
                    table_id=event.table_id,
                    action=event.action,
                    ip=event.ip,
                    user_agent=event.user_agent,
                    result=event.result,
                )
            )
            db.commit()

    def query_stats(self, since: datetime) -> list[dict[str, object]]:
        """
        Attempt counts grouped by (action, result) since ``since``.

        Returns:
            List of {"action", "result", "count"}, most frequent first.
        """
        with self._session_factory() as db:
            count = func.count(TableSessionLog.id).label("count")
            rows = db.execute(
                select(TableSessionLog.action, TableSessionLog.result, count)
                .where(TableSessionLog.created_at >= since)
                .group_by(TableSessionLog.action, TableSessionLog.result)
                .order_by(count.desc(), TableSessionLog.action, TableSessionLog.result)
            ).all()
            return [
                {"action": action, "result": result, "count": int(n)}
                for action, result, n in rows
            ]
