"""
Best-effort Event Publishing.

Publishing is never allowed to fail the write that produced the event:
the database is the source of truth and the bus is only a notification
path. The helper below catches and logs every error and reports 0
receivers instead of raising.
"""

from __future__ import annotations

import json
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger

if TYPE_CHECKING:
    import redis

logger = get_logger(__name__)

# Matches the client websocket frame cap; anything larger is a bug upstream.
MAX_EVENT_SIZE = 64 * 1024


def _encode(channel: str, payload: dict[str, Any]) -> str:
    message = json.dumps(payload, default=str)
    size = len(message.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event for {channel} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )
    return message


def publish_best_effort_sync(
    redis_client: "redis.Redis | None",
    channel: str,
    payload: dict[str, Any],
) -> int:
    """
    Publish a JSON payload from sync (threadpool) code.

    Contract: never raises. Returns the number of subscribers that got the
    message, or 0 when the bus is unavailable.
    """
    if redis_client is None:
        logger.error("Redis client unavailable, event not published", channel=channel)
        return 0
    try:
        receivers = redis_client.publish(channel, _encode(channel, payload))
        logger.debug("Event published", channel=channel, subscribers=receivers)
        return receivers
    except Exception as e:
        logger.error("Failed to publish event", channel=channel, error=str(e))
        return 0
