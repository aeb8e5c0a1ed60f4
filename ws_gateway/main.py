"""
Realtime gateway application.

A Socket.IO server for shared-cart rooms mounted in front of a small
FastAPI app (health and debug endpoints). A background task relays Redis
pub/sub messages to the sockets connected to this process.

Run:
    uvicorn ws_gateway.main:app --port 8001
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import settings
from shared.config.logging import setup_logging, ws_gateway_logger as logger
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.events.channels import SUBSCRIBE_PATTERNS
from shared.infrastructure.redis.client import RedisManager
from ws_gateway.cart_gateway import CartGateway, epoch_ms
from ws_gateway.membership import TableMembership
from ws_gateway.redis_subscriber import run_subscriber
from ws_gateway.relay import EventRelay


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
)
membership = TableMembership()
relay = EventRelay(sio)
CartGateway(sio, membership).register()


# =============================================================================
# Lifespan and background tasks
# =============================================================================


async def start_redis_subscriber(redis_manager: RedisManager) -> None:
    """Relay bus messages to local sockets until cancelled."""

    async def on_event(channel: str, payload) -> None:
        result = await relay.dispatch(channel, payload)
        if not result.relayed:
            logger.debug("Event not relayed", channel=channel, reason=result.skipped_reason)

    try:
        await run_subscriber(redis_manager.client, SUBSCRIBE_PATTERNS, on_event)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Redis subscriber error", error=str(e), exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("ws-gateway")
    logger.info(
        "Starting realtime gateway",
        port=settings.ws_gateway_port,
        env=settings.environment,
    )

    redis_manager = RedisManager.from_settings(settings)
    await redis_manager.connect()
    app.state.redis = redis_manager

    subscriber_task = asyncio.create_task(
        start_redis_subscriber(redis_manager), name="redis_subscriber"
    )

    yield

    logger.info("Shutting down realtime gateway")
    subscriber_task.cancel()
    try:
        await subscriber_task
    except asyncio.CancelledError:
        pass

    await redis_manager.close()


# =============================================================================
# FastAPI Application
# =============================================================================

api = FastAPI(
    title="Table Cart Realtime Gateway",
    description="Socket.IO fan-out of shared cart and order updates",
    version="1.0.0",
    lifespan=lifespan,
)

api.add_middleware(CorrelationIdMiddleware)
# Socket.IO handles its own CORS; this covers the HTTP diagnostics only
api.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@api.get("/ws/health")
async def health():
    return {"status": "healthy", "service": "ws_gateway", "timestamp": epoch_ms(), **membership.stats()}


@api.get("/ws/debug/room/{table_id}")
async def debug_room(table_id: str):
    """Sockets this process has joined to one table. Diagnostic only."""
    return {"tableId": table_id, "clients": membership.count(table_id)}


app = socketio.ASGIApp(sio, other_asgi_app=api)
