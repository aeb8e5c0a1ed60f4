"""
Event publishing over Redis pub/sub.

- channels.py: channel naming and the gateway's subscription patterns
- publisher.py: best-effort JSON publishing from sync request code
"""

from .channels import (
    CART_PATTERN,
    ORDERS_PATTERN,
    PRODUCTS_CHANNEL,
    SETTINGS_CHANNEL,
    BANNERS_CHANNEL,
    SUBSCRIBE_PATTERNS,
    channel_cart,
    table_id_from_cart_channel,
)
from .publisher import publish_best_effort_sync, MAX_EVENT_SIZE

__all__ = [
    "CART_PATTERN",
    "ORDERS_PATTERN",
    "PRODUCTS_CHANNEL",
    "SETTINGS_CHANNEL",
    "BANNERS_CHANNEL",
    "SUBSCRIBE_PATTERNS",
    "channel_cart",
    "table_id_from_cart_channel",
    "publish_best_effort_sync",
    "MAX_EVENT_SIZE",
]
