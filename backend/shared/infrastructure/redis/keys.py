"""
Redis key layout and TTL helpers.

The key shapes are part of the external contract (other services and
the test-suite inspect them directly); do not change them.
"""

from typing import Final


# =============================================================================
# Key Prefixes
# =============================================================================

PREFIX_ISSUED_TOKEN: Final[str] = "table:session:"
PREFIX_ACTIVE_SESSION: Final[str] = "table:active:"
PREFIX_RATELIMIT_TABLE_ISSUE: Final[str] = "ratelimit:qr:issue:"


def issued_token_key(token: str) -> str:
    """Key of a single-use check-in token."""
    return f"{PREFIX_ISSUED_TOKEN}{token}"


def active_session_key(session_id: str) -> str:
    """Key of an established table session."""
    return f"{PREFIX_ACTIVE_SESSION}{session_id}"


def table_issue_counter_key(table_static_id: str) -> str:
    """Per-table issuance counter used for burst protection."""
    return f"{PREFIX_RATELIMIT_TABLE_ISSUE}{table_static_id}"


def remaining_ttl_seconds(expires_at_ms: int, now_ms: int) -> int:
    """
    Physical TTL for a record whose logical expiry is ``expires_at_ms``.

    Rounded down so the key never outlives the logical deadline, with a
    floor of one second (SETEX rejects zero).
    """
    return max(1, (expires_at_ms - now_ms) // 1000)
