"""
Utilities module: Exceptions, option payloads, request metadata.
"""

from shared.utils.exceptions import (
    AppException,
    ValidationError,
    SessionError,
    StaffAuthError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    GoneError,
    RateLimitError,
    CartNotFoundError,
)
from shared.utils.options import normalize_options, build_cart_item_id
from shared.utils.request_meta import resolve_client_ip, resolve_user_agent

__all__ = [
    # exceptions
    "AppException",
    "ValidationError",
    "SessionError",
    "StaffAuthError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "GoneError",
    "RateLimitError",
    "CartNotFoundError",
    # options
    "normalize_options",
    "build_cart_item_id",
    # request metadata
    "resolve_client_ip",
    "resolve_user_agent",
]
