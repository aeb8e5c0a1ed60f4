"""
Redis Lua Scripts for Atomic Operations.

Both scripts run as a single indivisible step on the Redis server:

- GET_AND_DELETE_SCRIPT: pops a value. Two concurrent callers can never
  both observe it, which is what makes check-in tokens single-use.
- COUNTER_SCRIPT: INCR with EXPIRE on first hit, so a counter key can
  never be left without a TTL.

Usage:
    from shared.infrastructure.redis.lua_scripts import get_and_delete

    payload = await get_and_delete(redis, "table:session:<token>")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from redis.exceptions import NoScriptError

from shared.config.logging import get_logger

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = get_logger(__name__)


GET_AND_DELETE_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value then
    redis.call('DEL', KEYS[1])
end
return value
"""

COUNTER_SCRIPT = """
-- KEYS[1] = counter key
-- ARGV[1] = window size in seconds
-- Returns: {count, ttl_remaining}

local key = KEYS[1]
local window = tonumber(ARGV[1])

local count = redis.call('INCR', key)
if count == 1 then
    redis.call('EXPIRE', key, window)
end

local ttl = redis.call('TTL', key)
if ttl == -1 then
    redis.call('EXPIRE', key, window)
    ttl = window
end

return {count, ttl}
"""

# Script SHAs are content hashes, identical on every server; cache them per process.
_script_shas: dict[str, str] = {}


async def _eval_cached(
    redis_client: "redis.Redis",
    script: str,
    keys: list[str],
    args: list,
):
    """
    Run a script through EVALSHA, loading it on first use.

    A NOSCRIPT reply (server restarted or script cache flushed) reloads
    the script once and retries.
    """
    sha = _script_shas.get(script)
    if sha is None:
        sha = await redis_client.script_load(script)
        _script_shas[script] = sha

    try:
        return await redis_client.evalsha(sha, len(keys), *keys, *args)
    except NoScriptError:
        logger.debug("Lua script cache miss, re-registering", sha=sha[:8])
        sha = await redis_client.script_load(script)
        _script_shas[script] = sha
        return await redis_client.evalsha(sha, len(keys), *keys, *args)


async def get_and_delete(redis_client: "redis.Redis", key: str) -> str | None:
    """
    Atomically fetch and remove ``key``.

    Returns None when the key is absent (never set, expired or already
    popped). Errors propagate: falling back to GET followed by DEL would
    silently break single-use semantics.
    """
    return await _eval_cached(redis_client, GET_AND_DELETE_SCRIPT, [key], [])


async def increment_counter(
    redis_client: "redis.Redis",
    key: str,
    window_seconds: int,
) -> tuple[int, int]:
    """
    Increment a windowed counter.

    Returns:
        Tuple of (count after increment, seconds until the window resets)
    """
    count, ttl = await _eval_cached(redis_client, COUNTER_SCRIPT, [key], [window_seconds])
    return int(count), int(ttl)
