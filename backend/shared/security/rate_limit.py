"""
Rate limiting for the check-in endpoints.

Two layers:
- slowapi limits per client IP (issue and consume endpoints), storage
  configurable through RATE_LIMIT_STORAGE_URI.
- A Redis counter per table static id, so a single table's QR code cannot
  be used to mint tokens in bulk from many addresses. The INCR+EXPIRE runs
  as one Lua script so the counter can never be left without a TTL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from shared.config.settings import settings
from shared.config.logging import get_logger, audit_rate_limit_event
from shared.infrastructure.redis.keys import table_issue_counter_key
from shared.infrastructure.redis.lua_scripts import increment_counter
from shared.utils.exceptions import RateLimitError
from shared.utils.request_meta import resolve_client_ip

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = get_logger(__name__)


def _client_ip_key(request: Request) -> str:
    return resolve_client_ip(request)


# Keyed by the peer address; forwarded headers count only from TRUSTED_PROXIES
limiter = Limiter(key_func=_client_ip_key, storage_uri=settings.rate_limit_storage_uri)

QR_ISSUE_LIMIT = f"{settings.qr_issue_rate_limit} per {settings.qr_issue_rate_window} seconds"
QR_CONSUME_LIMIT = f"{settings.qr_consume_rate_limit} per {settings.qr_consume_rate_window} seconds"
CART_WRITE_LIMIT = "60 per 60 seconds"


async def check_table_issue_rate(
    redis_client: "redis.Redis",
    table_static_id: str,
    ip_address: str,
    limit: int | None = None,
    window: int | None = None,
) -> None:
    """
    Count one issuance against the table and raise once the window is full.

    Fails open on Redis errors: issuance itself needs Redis and will
    surface the outage on its own write.

    Raises:
        RateLimitError: If the table exceeded its issuance budget.
    """
    limit = limit if limit is not None else settings.qr_table_issue_limit
    window = window if window is not None else settings.qr_table_issue_window
    key = table_issue_counter_key(table_static_id)

    try:
        count, ttl = await increment_counter(redis_client, key, window)
    except Exception as e:
        logger.warning(
            "Table issue counter unavailable, allowing request",
            table_static_id=table_static_id,
            error=str(e),
        )
        return

    if count > limit:
        audit_rate_limit_event(
            "qr_issue_table",
            table_static_id,
            limit=limit,
            window=window,
            ip_address=ip_address,
            count=count,
        )
        raise RateLimitError(max(ttl, 1), table_static_id=table_static_id)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Handler for slowapi limit errors, shaped like the rest of the API errors.
    """
    audit_rate_limit_event(
        request.url.path,
        resolve_client_ip(request),
        limit=0,
        window=0,
        ip_address=resolve_client_ip(request),
        limit_detail=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": "60"},
    )
