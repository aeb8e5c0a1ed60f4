"""
Security module: staff authentication, check-in tokens, rate limiting.
"""

from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_staff_context,
    require_roles,
)
from shared.security.tokens import generate_secure_token, is_valid_token_format
from shared.security.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    check_table_issue_rate,
    QR_ISSUE_LIMIT,
    QR_CONSUME_LIMIT,
)

__all__ = [
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_staff_context",
    "require_roles",
    # tokens
    "generate_secure_token",
    "is_valid_token_format",
    # rate_limit
    "limiter",
    "rate_limit_exceeded_handler",
    "check_table_issue_rate",
    "QR_ISSUE_LIMIT",
    "QR_CONSUME_LIMIT",
]
