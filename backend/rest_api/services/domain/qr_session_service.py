"""
QR Session Service - single-use check-in tokens and the sessions they open.

Lifecycle of a token: ISSUED -> CONSUMED (atomic pop) or ISSUED -> EXPIRED
(Redis TTL). A successful consume mints an unrelated session id and stores
an ActiveSession whose ``expires_at`` is fixed at creation; validation
refreshes the last-seen metadata but never moves the deadline.

Redis is the only shared state. The table cache below is per instance;
build one service per process (see core/lifespan.py).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from pydantic import ValidationError as PydanticValidationError

from rest_api.repositories import SessionAuditEvent, SessionAuditLog, TableRecord, TableRegistry
from shared.config.constants import SessionAction, SessionResult, UNKNOWN_CLIENT, UNKNOWN_TABLE_ID
from shared.config.logging import mask_token, qr_logger as logger
from shared.config.settings import Settings
from shared.infrastructure.redis.keys import (
    active_session_key,
    issued_token_key,
    remaining_ttl_seconds,
)
from shared.infrastructure.redis.lua_scripts import get_and_delete
from shared.security.tokens import generate_secure_token, is_valid_token_format
from shared.utils.exceptions import (
    ConflictError,
    GoneError,
    NotFoundError,
    SessionError,
    ValidationError,
)
from shared.utils.schemas import (
    ActiveSession,
    ConsumeTokenResponse,
    IssuedTokenRecord,
    IssueTokenResponse,
)

if TYPE_CHECKING:
    import redis.asyncio as redis


def epoch_ms() -> int:
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class TableCache:
    """Active tables keyed by static id, with the time they were loaded."""

    tables: dict[str, TableRecord] = field(default_factory=dict)
    loaded_at_ms: int = 0

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return self.loaded_at_ms > 0 and now_ms - self.loaded_at_ms < ttl_ms


class QrSessionService:
    """
    Issues and consumes check-in tokens, validates active sessions.

    Usage:
        service = QrSessionService(redis, TableRegistry(SessionLocal), SessionAuditLog(SessionLocal), settings)
        issued = await service.issue_token("4", ip, user_agent)
        result = await service.consume_token(issued.token, ip, user_agent)
        session = await service.validate_active_session(result.session_id, ip, user_agent)
    """

    def __init__(
        self,
        redis_client: "redis.Redis",
        registry: TableRegistry,
        audit_log: SessionAuditLog,
        settings: Settings,
        now_ms: Callable[[], int] = epoch_ms,
    ):
        self._redis = redis_client
        self._registry = registry
        self._audit_log = audit_log
        self._now_ms = now_ms

        self.token_length = settings.qr_token_length
        self.token_ttl = settings.qr_token_ttl_seconds
        self.session_ttl = settings.qr_session_ttl_seconds
        self.bind_to_ip = settings.qr_bind_to_ip
        self.deep_link_base = settings.deep_link_base
        self._table_cache_ttl_ms = settings.qr_table_cache_ttl_seconds * 1000
        self._table_cache = TableCache()

    # =========================================================================
    # Table resolution
    # =========================================================================

    async def _reload_tables(self) -> None:
        tables = await asyncio.to_thread(self._registry.find_active_tables)
        self._table_cache = TableCache(
            tables={t.static_id: t for t in tables},
            loaded_at_ms=self._now_ms(),
        )
        logger.debug("Table cache reloaded", tables=len(tables))

    async def _resolve_table(self, table_static_id: str) -> TableRecord:
        """
        Map a printed static id to an active table.

        Served from the in-process cache while fresh, misses included, so
        unknown ids never reach the database until the cache expires. A
        stale cache reloads every active table in one query. If the bulk
        reload fails the single row is read directly instead.
        """
        static_id = (table_static_id or "").strip()
        if not static_id:
            raise ValidationError("INVALID_TABLE_ID", "Table id must not be empty")

        table: TableRecord | None
        cache = self._table_cache
        if cache.is_fresh(self._now_ms(), self._table_cache_ttl_ms):
            table = cache.tables.get(static_id)
        else:
            try:
                await self._reload_tables()
                table = self._table_cache.tables.get(static_id)
            except Exception as e:
                logger.warning("Table cache reload failed, reading registry directly", error=str(e))
                table = await asyncio.to_thread(
                    self._registry.find_active_table_by_static_id, static_id
                )

        if table is None:
            raise NotFoundError(
                "TABLE_NOT_FOUND",
                "Table not found or inactive",
                static_id=static_id,
            )
        return table

    # =========================================================================
    # Audit
    # =========================================================================

    async def _audit(
        self,
        token: str,
        table_id: str,
        action: str,
        ip: str,
        user_agent: str,
        result: str,
    ) -> None:
        """
        Append one audit row. Never raises.

        Attempts without a resolved table are only logged, the column is a
        foreign key to the table registry.
        """
        if not table_id or table_id == UNKNOWN_TABLE_ID:
            logger.debug(
                "Skipping session audit for unknown table",
                token=mask_token(token),
                action=action,
                result=result,
            )
            return

        event = SessionAuditEvent(
            token=token,
            table_id=table_id,
            action=action,
            ip=ip,
            user_agent=user_agent,
            result=result,
        )
        try:
            await asyncio.to_thread(self._audit_log.append, event)
        except Exception as e:
            logger.error(
                "Failed to write session audit event",
                table_id=table_id,
                action=action,
                result=result,
                error=str(e),
            )

    # =========================================================================
    # Issue / consume
    # =========================================================================

    async def issue_token(
        self,
        table_static_id: str,
        ip: str,
        user_agent: str | None,
    ) -> IssueTokenResponse:
        """
        Mint a single-use token for a table.

        Raises:
            ValidationError: Blank table id.
            NotFoundError: No active table with that static id.
        """
        table = await self._resolve_table(table_static_id)
        user_agent = user_agent or UNKNOWN_CLIENT

        token = generate_secure_token(self.token_length)
        record = IssuedTokenRecord(
            table_id=table.static_id,
            table_number=table.name,
            issued_at=self._now_ms(),
            created_ip=ip,
            created_ua=user_agent,
            max_uses=1,
            uses=0,
        )
        await self._redis.setex(
            issued_token_key(token),
            self.token_ttl,
            record.model_dump_json(by_alias=True),
        )

        await self._audit(token, table.static_id, SessionAction.ISSUE, ip, user_agent, SessionResult.SUCCESS)

        logger.info("Token issued", table_id=table.static_id, token=mask_token(token), ttl=self.token_ttl)
        return IssueTokenResponse(
            token=token,
            deep_link=f"{self.deep_link_base}/t/{token}",
            ttl=self.token_ttl,
        )

    async def consume_token(
        self,
        token: str,
        ip: str,
        user_agent: str | None,
    ) -> ConsumeTokenResponse:
        """
        Exchange a token for an active session, at most once.

        Of any number of concurrent calls with the same token exactly one
        succeeds; the pop is a single Lua GET+DEL.

        Raises:
            ValidationError: Malformed token or stored payload.
            GoneError: Token never existed, expired or was already consumed.
            ConflictError: IP binding violated, or the record was already used.
        """
        user_agent = user_agent or UNKNOWN_CLIENT

        if not is_valid_token_format(token, self.token_length):
            await self._audit(
                token, UNKNOWN_TABLE_ID, SessionAction.CONSUME, ip, user_agent, SessionResult.INVALID_FORMAT
            )
            raise ValidationError("INVALID_TOKEN_FORMAT", "Malformed check-in token")

        raw = await get_and_delete(self._redis, issued_token_key(token))
        if raw is None:
            await self._audit(
                token, UNKNOWN_TABLE_ID, SessionAction.CONSUME, ip, user_agent, SessionResult.NOT_FOUND_OR_EXPIRED
            )
            raise GoneError(
                "TOKEN_GONE",
                "This QR code has expired or was already used",
                token=mask_token(token),
            )

        try:
            record = IssuedTokenRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error("Malformed issued token payload", token=mask_token(token), error=str(e))
            await self._audit(
                token, UNKNOWN_TABLE_ID, SessionAction.CONSUME, ip, user_agent, SessionResult.INVALID_PAYLOAD
            )
            raise ValidationError("INVALID_SESSION_PAYLOAD", "Stored check-in data is invalid")

        if self.bind_to_ip and record.created_ip != ip:
            await self._audit(
                token, record.table_id, SessionAction.CONSUME, ip, user_agent, SessionResult.IP_MISMATCH
            )
            raise ConflictError(
                "TOKEN_IP_MISMATCH",
                "This QR code was issued to another device",
                token=mask_token(token),
                created_ip=record.created_ip,
                ip=ip,
            )

        if record.uses >= record.max_uses:
            await self._audit(
                token, record.table_id, SessionAction.CONSUME, ip, user_agent, SessionResult.MAX_USES_EXCEEDED
            )
            raise ConflictError("TOKEN_MAX_USES_EXCEEDED", "This QR code was already used")

        await self._audit(token, record.table_id, SessionAction.CONSUME, ip, user_agent, SessionResult.SUCCESS)

        # Fresh id: the token namespace and the session namespace never overlap
        session_id = generate_secure_token(self.token_length)
        established_at = self._now_ms()
        expires_at = established_at + self.session_ttl * 1000

        session = ActiveSession(
            session_id=session_id,
            table_id=record.table_id,
            table_number=record.table_number,
            created_at=established_at,
            expires_at=expires_at,
            created_ip=record.created_ip,
            created_ua=record.created_ua,
            last_ip=ip,
            last_ua=user_agent,
        )
        await self._redis.setex(
            active_session_key(session_id),
            self.session_ttl,
            session.model_dump_json(by_alias=True),
        )

        logger.info(
            "Active session established",
            table_id=record.table_id,
            token=mask_token(token),
            session_id=mask_token(session_id),
            ttl=self.session_ttl,
        )
        return ConsumeTokenResponse(
            table_id=record.table_id,
            table_number=record.table_number,
            established_at=ms_to_datetime(established_at),
            session_id=session_id,
            session_expires_at=ms_to_datetime(expires_at),
            session_ttl_seconds=self.session_ttl,
        )

    # =========================================================================
    # Active sessions
    # =========================================================================

    async def validate_active_session(
        self,
        session_id: str,
        ip: str,
        user_agent: str | None,
    ) -> ActiveSession:
        """
        Resolve a session id to a live session and record last-seen metadata.

        The stored record is rewritten with the remaining TTL only, so the
        deadline set at consume time is never extended.

        Raises:
            SessionError: EXPIRED (absent or past its deadline), INVALID
                (unparseable record), IP_MISMATCH (binding violated; the
                session is kept).
        """
        user_agent = user_agent or UNKNOWN_CLIENT
        key = active_session_key(session_id)

        raw = await self._redis.get(key)
        if raw is None:
            raise SessionError(SessionError.EXPIRED, session_id=mask_token(session_id))

        try:
            session = ActiveSession.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error("Malformed active session payload", session_id=mask_token(session_id), error=str(e))
            await self._redis.delete(key)
            raise SessionError(SessionError.INVALID, session_id=mask_token(session_id))

        now = self._now_ms()
        if session.expires_at <= now:
            await self._redis.delete(key)
            raise SessionError(SessionError.EXPIRED, session_id=mask_token(session_id))

        if self.bind_to_ip and session.created_ip and session.created_ip != ip:
            raise SessionError(
                SessionError.IP_MISMATCH,
                session_id=mask_token(session_id),
                created_ip=session.created_ip,
                ip=ip,
            )

        session = session.model_copy(update={"last_ip": ip, "last_ua": user_agent})
        await self._redis.setex(
            key,
            remaining_ttl_seconds(session.expires_at, now),
            session.model_dump_json(by_alias=True),
        )
        return session

    async def invalidate_active_session(self, session_id: str) -> None:
        """Unconditional delete (check-out)."""
        await self._redis.delete(active_session_key(session_id))
        logger.info("Active session invalidated", session_id=mask_token(session_id))

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_session_stats(self, hours: int = 24) -> list[dict[str, object]]:
        """Issue/consume counts by outcome over the last ``hours`` hours."""
        since = ms_to_datetime(self._now_ms()) - timedelta(hours=hours)
        return await asyncio.to_thread(self._audit_log.query_stats, since)
