"""
Redis infrastructure: connection management, key layout, Lua scripts.
"""

from shared.infrastructure.redis.client import RedisManager
from shared.infrastructure.redis.keys import (
    issued_token_key,
    active_session_key,
    table_issue_counter_key,
    remaining_ttl_seconds,
)
from shared.infrastructure.redis.lua_scripts import get_and_delete, increment_counter

__all__ = [
    "RedisManager",
    "issued_token_key",
    "active_session_key",
    "table_issue_counter_key",
    "remaining_ttl_seconds",
    "get_and_delete",
    "increment_counter",
]
