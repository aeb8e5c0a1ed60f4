"""
Centralized HTTP exceptions for the check-in and shared-cart APIs.

Every client-facing failure carries a machine-readable ``code`` so the
client can decide between "show expired-QR message", "re-prompt scan"
and "retry". Response body:

    {"detail": {"code": "TOKEN_GONE", "message": "..."}}

Usage:
    from shared.utils.exceptions import GoneError, SessionError

    raise GoneError("TOKEN_GONE", "This QR code has expired or was already used")
    raise SessionError(SessionError.EXPIRED)
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions inherit from this class to ensure consistent
    logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        self.code = code
        self.message = message

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(message, status_code=status_code, code=code, **log_context)

        super().__init__(
            status_code=status_code,
            detail={"code": code, "message": message},
            headers=headers,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("INVALID_TOKEN_FORMAT", "Malformed token")
        raise ValidationError("INVALID_QUANTITY", "Quantity must be positive", value=-1)
    """

    def __init__(self, code: str, message: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=code,
            message=message,
            **log_context,
        )


# =============================================================================
# 401 Unauthorized Errors
# =============================================================================


class SessionError(AppException):
    """
    Table session missing or unusable (401).

    The code tells the client what to do next: REQUIRED / EXPIRED /
    INVALID mean "scan the QR code again", IP_MISMATCH means the session
    is still alive but bound to another network.
    """

    REQUIRED = "TABLE_SESSION_REQUIRED"
    EXPIRED = "SESSION_EXPIRED"
    INVALID = "SESSION_INVALID"
    IP_MISMATCH = "SESSION_IP_MISMATCH"

    _MESSAGES = {
        REQUIRED: "A table session is required, scan the table QR code",
        EXPIRED: "Table session expired, scan the table QR code again",
        INVALID: "Table session is invalid, scan the table QR code again",
        IP_MISMATCH: "Table session was established from another network",
    }

    def __init__(self, code: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            message=self._MESSAGES.get(code, "Table session rejected"),
            **log_context,
        )


class StaffAuthError(AppException):
    """Bearer credential rejected (401)."""

    def __init__(self, message: str = "Invalid or expired staff credential", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="STAFF_AUTH_FAILED",
            message=message,
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """Authenticated staff member lacks the required role (403)."""

    def __init__(self, action: str | None = None, **log_context: Any):
        message = f"Not authorized to {action}" if action else "Access denied"
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code="FORBIDDEN",
            message=message,
            action=action,
            **log_context,
        )


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("TABLE_NOT_FOUND", "Table not found or inactive", static_id="4")
    """

    def __init__(self, code: str, message: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
            message=message,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    The resource is valid but this request cannot act on it (409).

    Used for IP-bound tokens consumed from another address and for
    sessions reaching for another table's cart.
    """

    def __init__(self, code: str, message: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code=code,
            message=message,
            **log_context,
        )


# =============================================================================
# 410 Gone Errors
# =============================================================================


class GoneError(AppException):
    """
    The resource existed but is no longer available (410).

    Tells the client to restart the issue flow, never to retry consume.
    """

    def __init__(self, code: str, message: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_410_GONE,
            code=code,
            message=message,
            log_level="info",
            **log_context,
        )


# =============================================================================
# 429 Too Many Requests
# =============================================================================


class RateLimitError(AppException):
    """Too many requests for this key (429)."""

    def __init__(self, retry_after: int, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="RATE_LIMITED",
            message=f"Too many requests, retry in {retry_after} seconds",
            headers={"Retry-After": str(retry_after)},
            **log_context,
        )


# =============================================================================
# Internal (non-HTTP) errors
# =============================================================================


class CartNotFoundError(RuntimeError):
    """
    A cart mutation referenced a table with no cart aggregate.

    This is a data-integrity signal (carts are created by the read path
    before any mutation), not a user-facing "not found".
    """

    def __init__(self, table_id: str):
        self.table_id = table_id
        super().__init__(f"Cart not found for table {table_id}")
