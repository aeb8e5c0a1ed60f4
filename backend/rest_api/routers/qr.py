"""
QR table check-in endpoints.

Flow: the printed QR code points at GET /api/qr/issue/{staticId}, which
mints a single-use token and redirects to the client deep link. The client
then calls GET /api/qr/consume/{token}; the response sets the
``table_session`` cookie and also returns the session id for clients that
prefer the x-table-session header.
"""

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from rest_api.core.dependencies import (
    TableSessionContext,
    get_qr_service,
    get_redis,
    require_table_session,
)
from rest_api.services.domain import QrSessionService, ms_to_datetime
from shared.config.constants import Roles, TABLE_SESSION_COOKIE
from shared.config.settings import settings
from shared.security.auth import current_staff_context, require_roles
from shared.security.rate_limit import (
    QR_CONSUME_LIMIT,
    QR_ISSUE_LIMIT,
    check_table_issue_rate,
    limiter,
)
from shared.utils.exceptions import SessionError
from shared.utils.request_meta import resolve_client_ip, resolve_user_agent
from shared.utils.schemas import (
    ActiveSessionOutput,
    ConsumeTokenResponse,
    IssueTokenResponse,
    SessionStatsResponse,
)


router = APIRouter(prefix="/api/qr", tags=["qr"])


async def _issue(
    request: Request,
    table_static_id: str,
    redis_client: aioredis.Redis,
    qr_service: QrSessionService,
) -> IssueTokenResponse:
    ip = resolve_client_ip(request)
    await check_table_issue_rate(redis_client, table_static_id.strip(), ip)
    return await qr_service.issue_token(table_static_id, ip, resolve_user_agent(request))


@router.post("/issue/{table_static_id}", response_model=IssueTokenResponse)
@limiter.limit(QR_ISSUE_LIMIT)
async def issue_token(
    request: Request,
    table_static_id: str,
    redis_client: aioredis.Redis = Depends(get_redis),
    qr_service: QrSessionService = Depends(get_qr_service),
) -> IssueTokenResponse:
    """Issue a single-use check-in token for a table."""
    return await _issue(request, table_static_id, redis_client, qr_service)


@router.get("/issue/{table_static_id}", response_class=RedirectResponse, status_code=302)
@limiter.limit(QR_ISSUE_LIMIT)
async def issue_token_redirect(
    request: Request,
    table_static_id: str,
    redis_client: aioredis.Redis = Depends(get_redis),
    qr_service: QrSessionService = Depends(get_qr_service),
) -> RedirectResponse:
    """Target of the printed QR code: issue a token and redirect to the client."""
    issued = await _issue(request, table_static_id, redis_client, qr_service)
    return RedirectResponse(url=issued.deep_link, status_code=302)


@router.get("/consume/{token}", response_model=ConsumeTokenResponse)
@limiter.limit(QR_CONSUME_LIMIT)
async def consume_token(
    request: Request,
    response: Response,
    token: str,
    qr_service: QrSessionService = Depends(get_qr_service),
) -> ConsumeTokenResponse:
    """
    Exchange a check-in token for a table session.

    410 when the token is unknown, expired or already used; 409 when it is
    bound to another address; 400 when it is malformed.
    """
    result = await qr_service.consume_token(
        token,
        resolve_client_ip(request),
        resolve_user_agent(request),
    )
    response.set_cookie(
        key=TABLE_SESSION_COOKIE,
        value=result.session_id,
        max_age=result.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.is_production,
    )
    return result


@router.get("/session", response_model=ActiveSessionOutput)
async def current_session(
    ctx: TableSessionContext = Depends(require_table_session),
) -> ActiveSessionOutput:
    """The caller's active table session."""
    if ctx.session is None:
        # Staff credentials carry no table session of their own
        raise SessionError(SessionError.REQUIRED, staff=ctx.staff.get("sub") if ctx.staff else None)
    session = ctx.session
    return ActiveSessionOutput(
        session_id=session.session_id,
        table_id=session.table_id,
        table_number=session.table_number,
        created_at=ms_to_datetime(session.created_at),
        expires_at=ms_to_datetime(session.expires_at),
    )


@router.post("/session/logout", status_code=204)
async def logout(
    request: Request,
    response: Response,
    ctx: TableSessionContext = Depends(require_table_session),
    qr_service: QrSessionService = Depends(get_qr_service),
) -> Response:
    """Check out: drop the active session and its cookie."""
    if ctx.session is not None:
        await qr_service.invalidate_active_session(ctx.session.session_id)
    response.status_code = 204
    response.delete_cookie(
        key=TABLE_SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.is_production,
    )
    return response


@router.get("/stats", response_model=SessionStatsResponse)
async def session_stats(
    hours: int = Query(default=24, ge=1, le=24 * 30),
    ctx: dict = Depends(current_staff_context),
    qr_service: QrSessionService = Depends(get_qr_service),
) -> SessionStatsResponse:
    """Issue/consume outcome counts over the last ``hours`` hours (admin only)."""
    require_roles(ctx, [Roles.ADMIN])
    rows = await qr_service.get_session_stats(hours)
    return SessionStatsResponse(hours=hours, stats=rows)
