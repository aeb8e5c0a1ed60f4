"""
Redis pub/sub subscriber for the realtime gateway.

Pattern-subscribes to the whole cart/order/catalog channel space and hands
each decoded message to a callback. Every gateway process runs one of
these and reaches only its own sockets, so no process may subscribe to a
subset of tables.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis
import redis.exceptions

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.events.publisher import MAX_EVENT_SIZE
from ws_gateway.retry import ReconnectPolicy

logger = get_logger(__name__)

MessageHandler = Callable[[str, Any], Awaitable[Any]]

PUBSUB_CLEANUP_TIMEOUT = settings.redis_pubsub_cleanup_timeout


def decode_message(msg: dict[str, Any]) -> tuple[str, Any] | None:
    """
    Extract (channel, payload) from a raw pub/sub message.

    Returns None for subscribe confirmations, oversized frames and
    anything that is not JSON.
    """
    if msg.get("type") not in ("message", "pmessage"):
        return None

    channel = msg.get("channel")
    data = msg.get("data")
    if isinstance(channel, bytes):
        channel = channel.decode("utf-8", errors="replace")
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if not isinstance(channel, str) or not isinstance(data, str):
        return None

    if len(data.encode("utf-8")) > MAX_EVENT_SIZE:
        logger.warning("Dropping oversized event", channel=channel, size=len(data))
        return None

    try:
        return channel, json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning("Dropping non-JSON event", channel=channel, error=str(e))
        return None


async def run_subscriber(
    redis_client: aioredis.Redis,
    patterns: list[str],
    on_message: MessageHandler,
    policy: ReconnectPolicy | None = None,
) -> None:
    """
    Subscribe to ``patterns`` and dispatch messages until cancelled.

    A failing callback is logged and skipped; one bad event never stops
    the loop. A lost connection is replaced by a fresh subscription after
    a jittered backoff.

    Raises:
        RuntimeError: If max reconnection attempts exceeded.
    """
    if policy is None:
        policy = ReconnectPolicy.from_settings(settings)

    pubsub: Any = None
    reconnect_attempts = 0

    try:
        while True:
            try:
                if pubsub is None:
                    pubsub = await _subscribe(redis_client, patterns, reconnect_attempts > 0)

                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg is None:
                    continue

                reconnect_attempts = 0
                decoded = decode_message(msg)
                if decoded is None:
                    continue

                channel, payload = decoded
                try:
                    await on_message(channel, payload)
                except Exception as e:
                    logger.error(
                        "Error handling bus event",
                        channel=channel,
                        error=str(e),
                        exc_info=True,
                    )

            except redis.exceptions.TimeoutError:
                # Normal for pubsub - continue listening
                continue

            except redis.exceptions.ConnectionError as e:
                reconnect_attempts += 1

                if policy.exhausted(reconnect_attempts):
                    logger.error(
                        "Max reconnection attempts exceeded, subscriber giving up",
                        attempts=reconnect_attempts,
                        max_attempts=policy.max_attempts,
                    )
                    raise RuntimeError(
                        f"Redis subscriber failed after {reconnect_attempts} reconnection attempts"
                    ) from e

                delay = policy.delay_for(reconnect_attempts)
                logger.warning(
                    "Redis connection lost, re-subscribing",
                    error=str(e),
                    attempt=reconnect_attempts,
                    max_attempts=policy.max_attempts,
                    delay=round(delay, 2),
                )
                await _close_pubsub(pubsub)
                pubsub = None
                await asyncio.sleep(delay)

    except asyncio.CancelledError:
        logger.info("Redis subscriber cancelled")
        raise
    finally:
        if pubsub is not None:
            try:
                await asyncio.wait_for(
                    pubsub.punsubscribe(*patterns),
                    timeout=PUBSUB_CLEANUP_TIMEOUT,
                )
            except Exception as e:
                logger.warning("Error during pubsub cleanup", error=str(e))
            await _close_pubsub(pubsub)


async def _subscribe(
    redis_client: aioredis.Redis,
    patterns: list[str],
    reconnect: bool,
) -> Any:
    pubsub = redis_client.pubsub()
    try:
        await pubsub.psubscribe(*patterns)
    except BaseException:
        await _close_pubsub(pubsub)
        raise
    if reconnect:
        logger.info("Redis subscriber reconnected", patterns=patterns)
    else:
        logger.info("Redis subscriber started", patterns=patterns)
    return pubsub


async def _close_pubsub(pubsub: Any) -> None:
    """Close a pubsub, bounded by the cleanup timeout. Never raises."""
    if pubsub is None:
        return
    try:
        await asyncio.wait_for(pubsub.aclose(), timeout=PUBSUB_CLEANUP_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("Pubsub close timed out", timeout=PUBSUB_CLEANUP_TIMEOUT)
    except Exception as e:
        logger.debug("Error closing old pubsub", error=str(e))
