"""
Redis Connection Management.

One RedisManager per process owns both the async pool (request handlers,
pub/sub subscriber) and the sync pool (cart publishing from threadpool
endpoints). It is created in the application lifespan, stored on
``app.state.redis`` and closed on shutdown.
"""

from __future__ import annotations

import redis
import redis.asyncio as aioredis

from shared.config.settings import Settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


class RedisManager:
    """
    Owns the async and sync Redis connection pools for one process.

    Usage:
        manager = RedisManager.from_settings(settings)
        await manager.connect()
        ...
        await manager.close()
    """

    def __init__(
        self,
        url: str,
        max_connections: int = 50,
        sync_max_connections: int = 20,
        socket_timeout: int = 5,
    ) -> None:
        self._url = url
        self._max_connections = max_connections
        self._sync_max_connections = sync_max_connections
        self._socket_timeout = socket_timeout
        self._async_client: aioredis.Redis | None = None
        self._sync_pool: redis.ConnectionPool | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisManager":
        return cls(
            url=settings.redis_url,
            max_connections=settings.redis_pool_max_connections,
            sync_max_connections=settings.redis_sync_pool_max_connections,
            socket_timeout=settings.redis_socket_timeout,
        )

    async def connect(self) -> aioredis.Redis:
        """Create the async pool and verify connectivity."""
        if self._async_client is None:
            self._async_client = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                decode_responses=True,
                socket_connect_timeout=self._socket_timeout,
                socket_timeout=self._socket_timeout,
                health_check_interval=30,
            )
            await self._async_client.ping()
            logger.info(
                "Redis async pool initialized",
                max_connections=self._max_connections,
                timeout=self._socket_timeout,
            )
        return self._async_client

    @property
    def client(self) -> aioredis.Redis:
        """The connected async client. Raises if connect() was not awaited."""
        if self._async_client is None:
            raise RuntimeError("RedisManager.connect() must be awaited before use")
        return self._async_client

    def sync_client(self) -> redis.Redis:
        """
        Get a sync client backed by the shared sync pool.

        Each call returns a lightweight client over the same pool, so
        concurrent threadpool handlers do not block each other.
        """
        if self._sync_pool is None:
            self._sync_pool = redis.ConnectionPool.from_url(
                self._url,
                max_connections=self._sync_max_connections,
                decode_responses=True,
                socket_connect_timeout=self._socket_timeout,
                socket_timeout=self._socket_timeout,
                health_check_interval=30,
            )
            logger.info(
                "Redis sync pool initialized",
                max_connections=self._sync_max_connections,
            )
        return redis.Redis(connection_pool=self._sync_pool)

    async def close(self) -> None:
        """Close both pools. Safe to call more than once."""
        if self._async_client is not None:
            try:
                await self._async_client.aclose()
                logger.info("Redis async pool closed")
            except Exception as e:
                logger.warning("Error closing Redis async pool", error=str(e))
            finally:
                self._async_client = None

        if self._sync_pool is not None:
            try:
                self._sync_pool.disconnect()
                logger.info("Redis sync pool closed")
            except Exception as e:
                logger.warning("Error closing Redis sync pool", error=str(e))
            finally:
                self._sync_pool = None
