"""
Cart Gateway - Socket.IO handlers for shared-cart rooms.

Client events:
- joinCart {tableId, userId?}: enter room table:<tableId>, answer
  "cartSubscribed" with the member count, tell the room "userJoined"
- leaveCart {tableId}: leave the room, tell the room "userLeft"
- ping: ack {pong: epoch_ms}

Room membership in Socket.IO decides delivery. TableMembership only
mirrors it so the debug endpoint can report counts.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import socketio

from shared.config.logging import get_logger
from ws_gateway.membership import TableMembership
from ws_gateway.relay import table_room

logger = get_logger(__name__)

CART_SUBSCRIBED = "cartSubscribed"
USER_JOINED = "userJoined"
USER_LEFT = "userLeft"
ERROR_EVENT = "error"


def epoch_ms() -> int:
    return int(time.time() * 1000)


def _table_id_from(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    table_id = data.get("tableId")
    if table_id is None:
        return None
    table_id = str(table_id).strip()
    return table_id or None


class CartGateway:
    """Registers the cart handlers on an AsyncServer."""

    def __init__(
        self,
        sio: socketio.AsyncServer,
        membership: TableMembership,
        now_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self._sio = sio
        self._membership = membership
        self._now_ms = now_ms

    def register(self) -> None:
        self._sio.on("connect", self.on_connect)
        self._sio.on("disconnect", self.on_disconnect)
        self._sio.on("joinCart", self.join_cart)
        self._sio.on("leaveCart", self.leave_cart)
        self._sio.on("ping", self.ping)

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        logger.info("Client connected", sid=sid)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        table_id, remaining = self._membership.leave(sid)
        if table_id is not None:
            await self._sio.emit(USER_LEFT, {"clientCount": remaining}, to=table_room(table_id))
        logger.info("Client disconnected", sid=sid, table_id=table_id, reason=str(reason))

    async def join_cart(self, sid: str, data: Any) -> dict[str, Any]:
        table_id = _table_id_from(data)
        if table_id is None:
            error = {"message": "tableId is required"}
            await self._sio.emit(ERROR_EVENT, error, to=sid)
            return {"ok": False, **error}

        # A socket follows one table at a time
        previous = self._membership.table_of(sid)
        if previous is not None and previous != table_id:
            await self.leave_cart(sid, {"tableId": previous})

        user_id = data.get("userId")
        room = table_room(table_id)
        await self._sio.enter_room(sid, room)
        count = self._membership.join(sid, table_id, user_id=user_id)

        subscribed = {
            "tableId": table_id,
            "message": f"Subscribed to cart for table {table_id}",
            "clientsInTable": count,
        }
        await self._sio.emit(CART_SUBSCRIBED, subscribed, to=sid)
        await self._sio.emit(
            USER_JOINED,
            {"userId": user_id, "clientCount": count},
            to=room,
            skip_sid=sid,
        )
        logger.info("Client joined cart", sid=sid, table_id=table_id, clients=count)
        return {"ok": True, **subscribed}

    async def leave_cart(self, sid: str, data: Any) -> dict[str, Any]:
        table_id = _table_id_from(data)
        if table_id is None:
            error = {"message": "tableId is required"}
            await self._sio.emit(ERROR_EVENT, error, to=sid)
            return {"ok": False, **error}

        room = table_room(table_id)
        await self._sio.leave_room(sid, room)
        _, remaining = self._membership.leave(sid, table_id)
        await self._sio.emit(USER_LEFT, {"clientCount": remaining}, to=room)
        logger.info("Client left cart", sid=sid, table_id=table_id, clients=remaining)
        return {"ok": True, "tableId": table_id, "clientCount": remaining}

    async def ping(self, sid: str, data: Any = None) -> dict[str, int]:
        return {"pong": self._now_ms()}
