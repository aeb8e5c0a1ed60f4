"""
Centralized constants for the check-in and shared-cart services.
Avoids magic strings for audit outcomes, store keys and channels.

Usage:
    from shared.config.constants import SessionAction, SessionResult

    await audit_log.append(action=SessionAction.CONSUME, result=SessionResult.SUCCESS, ...)
"""

from typing import Final


# =============================================================================
# Session Audit Log
# =============================================================================


class SessionAction:
    """Audit log action values."""

    ISSUE: Final[str] = "issue"
    CONSUME: Final[str] = "consume"


class SessionResult:
    """Audit log outcome tags (free-form column, these are the ones we write)."""

    SUCCESS: Final[str] = "success"
    NOT_FOUND_OR_EXPIRED: Final[str] = "not_found_or_expired"
    IP_MISMATCH: Final[str] = "ip_mismatch"
    MAX_USES_EXCEEDED: Final[str] = "max_uses_exceeded"
    INVALID_FORMAT: Final[str] = "invalid_format"
    INVALID_PAYLOAD: Final[str] = "invalid_payload"


# Table id recorded when the popped payload could not be resolved.
# Audit rows are never written for it (the column references dining_table).
UNKNOWN_TABLE_ID: Final[str] = "unknown"
UNKNOWN_CLIENT: Final[str] = "unknown"


# =============================================================================
# Table Session Transport
# =============================================================================


TABLE_SESSION_HEADER: Final[str] = "x-table-session"
TABLE_SESSION_COOKIE: Final[str] = "table_session"


# =============================================================================
# Staff Roles (bearer-authenticated traffic)
# =============================================================================


class Roles:
    """Staff role constants carried in the JWT ``roles`` claim."""

    ADMIN: Final[str] = "ADMIN"
    WAITER: Final[str] = "WAITER"


# =============================================================================
# Shared Cart
# =============================================================================


class Limits:
    """Input bounds for cart operations."""

    MAX_ITEM_QUANTITY: Final[int] = 99
    MAX_OPTIONS_PER_ITEM: Final[int] = 32
    # Width of the cart line id column
    MAX_ITEM_ID_LENGTH: Final[int] = 512


# =============================================================================
# CORS
# =============================================================================


# Development origins, used when ALLOWED_ORIGINS is empty
DEFAULT_CORS_ORIGINS: Final[list[str]] = [
    "http://localhost:3000",
    "http://localhost:3001",  # Client app (CLIENT_URL default)
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
    "http://127.0.0.1:5173",
]
