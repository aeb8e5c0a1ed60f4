"""
Staff authentication for bearer-authenticated traffic.

Staff/admin access tokens are issued by the platform's auth service; this
module only signs (for tooling and tests) and verifies them. Diners never
hold one: they authenticate through a table session instead.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header

from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE
from shared.config.logging import get_logger
from shared.utils.exceptions import StaffAuthError, ForbiddenError

logger = get_logger(__name__)


def sign_jwt(payload: dict[str, Any], ttl_seconds: int = 15 * 60) -> str:
    """
    Sign a staff access token with the given payload.

    Args:
        payload: Claims to include in the token (sub, roles, email, ...)
        ttl_seconds: Token lifetime in seconds.

    Returns:
        Signed JWT token string.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a staff access token.

    Returns:
        Decoded token claims.

    Raises:
        StaffAuthError: If the token is invalid, expired or not an access token.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise StaffAuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the actual error for debugging, return a generic message to the client
        logger.warning("JWT validation failed", error=str(e))
        raise StaffAuthError("Invalid token")

    if "sub" not in payload:
        raise StaffAuthError("Invalid token: missing subject claim")
    if payload.get("type") not in ("access", None):
        raise StaffAuthError("Invalid token: invalid type claim")

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        StaffAuthError: If header is missing or malformed.
    """
    if not authorization:
        raise StaffAuthError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise StaffAuthError("Invalid Authorization header format. Expected: Bearer <token>")
    return token.strip()


def current_staff_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the staff context from the bearer token.

    Usage:
        @router.get("/stats")
        def stats(ctx = Depends(current_staff_context)):
            require_roles(ctx, [Roles.ADMIN])
    """
    return verify_jwt(get_bearer_token(authorization))


def require_roles(ctx: dict[str, Any], allowed: list[str] | frozenset[str]) -> None:
    """
    Verify that the staff member has at least one of the allowed roles.

    Raises:
        ForbiddenError: If the caller lacks every allowed role.
    """
    user_roles = set(ctx.get("roles", []))
    if not user_roles.intersection(set(allowed)):
        raise ForbiddenError(
            f"perform this action (requires one of: {', '.join(sorted(allowed))})",
            user_id=ctx.get("sub"),
        )
