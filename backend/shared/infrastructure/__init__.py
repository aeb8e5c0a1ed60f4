"""
Infrastructure module: Database and Redis.

Provides:
- Database sessions and transactions (db.py)
- Redis connection management, key layout and Lua scripts (redis/)
- Redis pub/sub publishing (events/)
- Correlation IDs for logging (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    safe_commit,
)
from shared.infrastructure.redis import RedisManager
from shared.infrastructure.events import publish_best_effort_sync

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "safe_commit",
    # redis
    "RedisManager",
    "publish_best_effort_sync",
]
