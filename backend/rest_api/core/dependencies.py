"""
FastAPI dependencies: Redis clients, services and the table-session guard.

Process-wide collaborators (Redis manager, QR session service) are built
in the lifespan and read from ``app.state``; tests swap them through
``app.dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import redis
import redis.asyncio as aioredis
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from rest_api.services.domain import QrSessionService, SharedCartService
from shared.config.constants import TABLE_SESSION_COOKIE, TABLE_SESSION_HEADER
from shared.config.logging import get_logger
from shared.infrastructure.db import get_db
from shared.security.auth import get_bearer_token, verify_jwt
from shared.utils.exceptions import ConflictError, SessionError
from shared.utils.request_meta import resolve_client_ip, resolve_user_agent
from shared.utils.schemas import ActiveSession

logger = get_logger(__name__)


# =============================================================================
# Infrastructure
# =============================================================================


def get_redis(request: Request) -> aioredis.Redis:
    return request.app.state.redis.client


def get_redis_sync(request: Request) -> redis.Redis | None:
    """Sync client for threadpool endpoints; None when Redis was never set up."""
    manager = getattr(request.app.state, "redis", None)
    if manager is None:
        return None
    return manager.sync_client()


def get_qr_service(request: Request) -> QrSessionService:
    return request.app.state.qr_service


def get_shared_cart_service(
    db: Session = Depends(get_db),
    redis_client: redis.Redis | None = Depends(get_redis_sync),
) -> SharedCartService:
    return SharedCartService(db, redis_client)


# =============================================================================
# Table session guard
# =============================================================================


@dataclass(frozen=True)
class TableSessionContext:
    """
    Who is calling a table-scoped endpoint.

    Exactly one of ``session`` (a diner with a checked-in table) and
    ``staff`` (verified bearer claims) is set.
    """

    session: ActiveSession | None = None
    staff: dict[str, Any] | None = None

    @property
    def is_staff(self) -> bool:
        return self.staff is not None

    @property
    def table_id(self) -> str | None:
        return self.session.table_id if self.session else None


async def require_table_session(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_table_session: str | None = Header(default=None, alias=TABLE_SESSION_HEADER),
    qr_service: QrSessionService = Depends(get_qr_service),
) -> TableSessionContext:
    """
    Resolve the caller's table session.

    A bearer credential takes the staff path and skips table binding; it
    must verify, an invalid bearer is rejected rather than falling back to
    the cookie. Otherwise the session id comes from the x-table-session
    header, then the table_session cookie.

    Raises:
        StaffAuthError: Bearer present but invalid.
        SessionError: No session id, or the session failed validation.
    """
    if authorization:
        claims = verify_jwt(get_bearer_token(authorization))
        ctx = TableSessionContext(staff=claims)
        request.state.table_session = ctx
        return ctx

    session_id = (x_table_session or "").strip() or request.cookies.get(TABLE_SESSION_COOKIE)
    if not session_id:
        raise SessionError(SessionError.REQUIRED, path=request.url.path)

    session = await qr_service.validate_active_session(
        session_id,
        resolve_client_ip(request),
        resolve_user_agent(request),
    )
    ctx = TableSessionContext(session=session)
    request.state.table_session = ctx
    return ctx


def ensure_table_access(ctx: TableSessionContext, table_id: str) -> None:
    """
    Diners may only act on the table they checked in at.

    Raises:
        ConflictError: TABLE_SESSION_MISMATCH.
    """
    if ctx.is_staff:
        return
    if ctx.table_id != table_id:
        raise ConflictError(
            "TABLE_SESSION_MISMATCH",
            "Your table session belongs to another table",
            session_table_id=ctx.table_id,
            table_id=table_id,
        )
