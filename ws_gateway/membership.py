"""
Table Membership - which sockets joined which table, for diagnostics only.

Delivery never consults this map: broadcasts go through Socket.IO rooms.
The map is per process and starts empty on every restart; it exists to
answer "how many clients are watching table X on this node".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType


@dataclass(frozen=True)
class ClientSession:
    sid: str
    table_id: str
    user_id: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TableMembership:
    """
    Indices:
    - by_table: table_id -> set[sid]
    - by_sid: sid -> ClientSession (reverse mapping for disconnect)

    A socket tracks one table at a time; joining another table moves it.
    Only touched from the event loop, so no locking.
    """

    def __init__(self) -> None:
        self._by_table: dict[str, set[str]] = {}
        self._by_sid: dict[str, ClientSession] = {}

    @property
    def by_table(self) -> MappingProxyType[str, set[str]]:
        """Sockets indexed by table id (immutable view)."""
        return MappingProxyType(self._by_table)

    def join(self, sid: str, table_id: str, user_id: str | None = None) -> int:
        """Record ``sid`` at ``table_id``. Returns the table's member count."""
        previous = self._by_sid.get(sid)
        if previous is not None and previous.table_id != table_id:
            self._discard(sid, previous.table_id)

        self._by_sid[sid] = ClientSession(sid=sid, table_id=table_id, user_id=user_id)
        self._by_table.setdefault(table_id, set()).add(sid)
        return len(self._by_table[table_id])

    def leave(self, sid: str, table_id: str | None = None) -> tuple[str | None, int]:
        """
        Forget ``sid``. With ``table_id`` only that membership is dropped.

        Returns:
            Tuple of (table the socket left or None, remaining member count)
        """
        session = self._by_sid.get(sid)
        target = table_id or (session.table_id if session else None)
        if target is None:
            return None, 0

        if session is not None and session.table_id == target:
            del self._by_sid[sid]
        self._discard(sid, target)
        return target, self.count(target)

    def count(self, table_id: str) -> int:
        return len(self._by_table.get(table_id, ()))

    def table_of(self, sid: str) -> str | None:
        session = self._by_sid.get(sid)
        return session.table_id if session else None

    def stats(self) -> dict[str, int]:
        return {
            "tables": len(self._by_table),
            "clients": len(self._by_sid),
        }

    def _discard(self, sid: str, table_id: str) -> None:
        members = self._by_table.get(table_id)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._by_table[table_id]
