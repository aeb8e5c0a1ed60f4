"""
Check-in token generation and format validation.

Tokens and session ids are base62 strings drawn from ``secrets``. Bytes
are mapped with rejection sampling: only values below 248 (the largest
multiple of 62 that fits in a byte) are used, so every character is
equally likely.
"""

import re
import secrets
import string

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase

# 62 * 4; bytes at or above this would bias the first 8 characters
_REJECTION_BOUND = 248

_BASE62_RE = re.compile(r"^[0-9A-Za-z]+$")


def generate_secure_token(length: int = 24) -> str:
    """
    Generate a uniformly distributed base62 token of exactly ``length`` chars.

    Raises:
        ValueError: If length is not positive.
    """
    if length <= 0:
        raise ValueError(f"Token length must be positive, got {length}")

    chars: list[str] = []
    while len(chars) < length:
        # Over-draw so a single batch almost always suffices
        for byte in secrets.token_bytes(length + length // 4 + 4):
            if byte < _REJECTION_BOUND:
                chars.append(BASE62_ALPHABET[byte % 62])
                if len(chars) == length:
                    break
    return "".join(chars)


def is_valid_token_format(token: object, expected_length: int) -> bool:
    """True iff ``token`` is a base62 string of exactly ``expected_length`` chars."""
    if not isinstance(token, str) or len(token) != expected_length:
        return False
    return _BASE62_RE.fullmatch(token) is not None
