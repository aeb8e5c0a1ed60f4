"""
Tests for check-in token generation and the format gate.
"""

import pytest

from shared.security.tokens import (
    BASE62_ALPHABET,
    generate_secure_token,
    is_valid_token_format,
)


class TestGenerateSecureToken:
    def test_exact_length_and_alphabet(self):
        for length in (1, 16, 24, 64):
            token = generate_secure_token(length)
            assert len(token) == length
            assert set(token) <= set(BASE62_ALPHABET)

    def test_default_length_is_24(self):
        assert len(generate_secure_token()) == 24

    def test_rejects_non_positive_length(self):
        with pytest.raises(ValueError):
            generate_secure_token(0)
        with pytest.raises(ValueError):
            generate_secure_token(-5)

    def test_thousand_tokens_do_not_collide(self):
        tokens = {generate_secure_token(24) for _ in range(1000)}
        assert len(tokens) == 1000

    def test_every_character_class_shows_up(self):
        sample = "".join(generate_secure_token(64) for _ in range(50))
        assert any(c.isdigit() for c in sample)
        assert any(c.isupper() for c in sample)
        assert any(c.islower() for c in sample)

    def test_generated_tokens_pass_the_format_gate(self):
        token = generate_secure_token(24)
        assert is_valid_token_format(token, 24)


class TestIsValidTokenFormat:
    @pytest.mark.parametrize(
        "token",
        [
            "a" * 23,
            "a" * 25,
            "",
            "abc-def_ghi.jkl/mno+pqrs",
            "abcdefghijklmnopqrstuvw ",
            "abcdefghijklmnopqrstuvwé",
        ],
    )
    def test_rejects_malformed(self, token):
        assert is_valid_token_format(token, 24) is False

    def test_rejects_non_strings(self):
        assert is_valid_token_format(None, 24) is False
        assert is_valid_token_format(12345, 5) is False

    def test_accepts_mixed_case_digits(self):
        assert is_valid_token_format("0aZ9bY8cX7dW6eV5fU4gT3hS", 24) is True
