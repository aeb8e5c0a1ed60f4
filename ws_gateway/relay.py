"""
Event Relay - turns bus messages into Socket.IO client events.

Usage:
    relay = EventRelay(sio)
    result = await relay.dispatch("cart:4", {"tableId": "4", "cart": {...}})

Routing rules:
- cart:<tableId>  -> "cartUpdated" to room table:<tableId>, payload {cart, timestamp}
- orders:<id>     -> "orderUpdated" to everyone, payload verbatim
- products        -> "productUpdated" to everyone, payload verbatim
- settings        -> "settingsUpdated" to everyone, payload verbatim
- banners         -> "bannersUpdated" to everyone, payload verbatim

Cart payloads already hold the full cart snapshot; the relay never diffs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from shared.config.logging import get_logger
from shared.infrastructure.events.channels import (
    BANNERS_CHANNEL,
    CART_CHANNEL_PREFIX,
    ORDERS_CHANNEL_PREFIX,
    PRODUCTS_CHANNEL,
    SETTINGS_CHANNEL,
    table_id_from_cart_channel,
)

logger = get_logger(__name__)


class EmitterProtocol(Protocol):
    """The slice of socketio.AsyncServer the relay needs."""

    async def emit(self, event: str, data: Any = None, to: str | None = None, **kwargs: Any) -> None: ...


CART_UPDATED = "cartUpdated"
ORDER_UPDATED = "orderUpdated"
PRODUCT_UPDATED = "productUpdated"
SETTINGS_UPDATED = "settingsUpdated"
BANNERS_UPDATED = "bannersUpdated"

_VERBATIM_EVENTS: dict[str, str] = {
    PRODUCTS_CHANNEL: PRODUCT_UPDATED,
    SETTINGS_CHANNEL: SETTINGS_UPDATED,
    BANNERS_CHANNEL: BANNERS_UPDATED,
}


def table_room(table_id: str) -> str:
    """Socket.IO room holding every socket joined to one table's cart."""
    return f"table:{table_id}"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RelayResult:
    """Outcome of relaying one bus message."""

    event: str | None = None
    room: str | None = None
    skipped_reason: str | None = None

    @property
    def relayed(self) -> bool:
        return self.event is not None


class EventRelay:
    def __init__(
        self,
        sio: EmitterProtocol,
        clock: Callable[[], str] = _utc_iso,
    ) -> None:
        self._sio = sio
        self._clock = clock

    async def dispatch(self, channel: str, payload: Any) -> RelayResult:
        """Relay one decoded bus message. Unknown channels are skipped."""
        if channel.startswith(CART_CHANNEL_PREFIX):
            return await self._relay_cart(channel, payload)

        if channel.startswith(ORDERS_CHANNEL_PREFIX):
            await self._sio.emit(ORDER_UPDATED, payload)
            return RelayResult(event=ORDER_UPDATED)

        event = _VERBATIM_EVENTS.get(channel)
        if event is not None:
            await self._sio.emit(event, payload)
            return RelayResult(event=event)

        logger.debug("No relay rule for channel", channel=channel)
        return RelayResult(skipped_reason="unknown_channel")

    async def _relay_cart(self, channel: str, payload: Any) -> RelayResult:
        if not isinstance(payload, dict):
            logger.warning("Cart event payload is not an object", channel=channel)
            return RelayResult(skipped_reason="invalid_payload")

        table_id = payload.get("tableId") or table_id_from_cart_channel(channel)
        if not table_id:
            logger.warning("Cart event without table id", channel=channel)
            return RelayResult(skipped_reason="missing_table_id")

        room = table_room(str(table_id))
        await self._sio.emit(
            CART_UPDATED,
            {"cart": payload.get("cart"), "timestamp": self._clock()},
            to=room,
        )
        logger.debug("Cart update relayed", table_id=table_id, room=room)
        return RelayResult(event=CART_UPDATED, room=room)
