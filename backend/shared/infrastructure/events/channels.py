"""
Redis Channel Naming.

Cart changes fan out per table; order, catalog, settings and banner
changes are relayed verbatim to every connected client.
"""

from __future__ import annotations

from typing import Final

CART_CHANNEL_PREFIX: Final[str] = "cart:"
ORDERS_CHANNEL_PREFIX: Final[str] = "orders:"

PRODUCTS_CHANNEL: Final[str] = "products"
SETTINGS_CHANNEL: Final[str] = "settings"
BANNERS_CHANNEL: Final[str] = "banners"

# Every gateway process subscribes to the whole channel space, never a
# shard of it: each one only reaches its own locally connected sockets.
CART_PATTERN: Final[str] = f"{CART_CHANNEL_PREFIX}*"
ORDERS_PATTERN: Final[str] = f"{ORDERS_CHANNEL_PREFIX}*"
SUBSCRIBE_PATTERNS: Final[list[str]] = [
    CART_PATTERN,
    ORDERS_PATTERN,
    PRODUCTS_CHANNEL,
    SETTINGS_CHANNEL,
    BANNERS_CHANNEL,
]


def _validate_id(id_value: str, name: str) -> None:
    if not isinstance(id_value, str) or not id_value.strip():
        raise ValueError(f"{name} must be a non-empty string, got {id_value!r}")


def channel_cart(table_id: str) -> str:
    """Channel carrying full cart snapshots for one table."""
    _validate_id(table_id, "table_id")
    return f"{CART_CHANNEL_PREFIX}{table_id}"


def table_id_from_cart_channel(channel: str) -> str | None:
    """Inverse of channel_cart(); None for any other channel."""
    if not channel.startswith(CART_CHANNEL_PREFIX):
        return None
    table_id = channel[len(CART_CHANNEL_PREFIX):]
    return table_id or None
