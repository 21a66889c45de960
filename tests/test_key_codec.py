"""Tests for API key generation, hashing and format checks."""

import hashlib

import pytest

from app.core.key_codec import (
    extract_key_prefix,
    generate_api_key,
    hash_api_key,
    is_valid_api_key_format,
    looks_like_api_key,
)

VALID_TOKEN = "gup_AbCd-_12_" + "x" * 30 + "-_"


class TestGenerateApiKey:
    """Test key generation."""

    def test_generated_tokens_are_well_formed(self):
        """Every generated token passes the format check."""
        for _ in range(50):
            generated = generate_api_key()
            assert is_valid_api_key_format(generated.token), generated.token

    def test_prefix_is_derived_from_payload(self):
        """The displayed prefix is the first 8 chars of the random payload."""
        generated = generate_api_key()
        short, payload = generated.token[4:12], generated.token[13:]
        assert generated.prefix == f"gup_{short}"
        assert payload.startswith(short)
        assert len(payload) == 32

    def test_hash_matches_rehash(self):
        generated = generate_api_key()
        assert generated.hash == hash_api_key(generated.token)
        assert hash_api_key(generated.token) == hash_api_key(generated.token)

    def test_tokens_are_unique(self):
        tokens = {generate_api_key().token for _ in range(100)}
        assert len(tokens) == 100

    def test_hash_never_contains_token(self):
        generated = generate_api_key()
        assert generated.token not in generated.hash


class TestHashApiKey:
    def test_sha256_hex_digest(self):
        assert hash_api_key(VALID_TOKEN) == hashlib.sha256(VALID_TOKEN.encode("utf-8")).hexdigest()
        assert len(hash_api_key(VALID_TOKEN)) == 64


class TestFormatValidation:
    """Test the structural token check."""

    def test_valid_token(self):
        assert is_valid_api_key_format(VALID_TOKEN)

    @pytest.mark.parametrize("token", [
        "",
        "gup_",
        "gup_short_" + "x" * 32,  # prefix too short
        "gup_AbCdEfGh_" + "x" * 31,  # payload too short
        "gup_AbCdEfGh_" + "x" * 33,  # payload too long
        "gup_AbCdEf!h_" + "x" * 32,  # illegal character
        "xyz_AbCdEfGh_" + "x" * 32,  # wrong namespace
        "gup-AbCdEfGh-" + "x" * 32,  # wrong separator
        " gup_AbCdEfGh_" + "x" * 32,
    ])
    def test_invalid_tokens(self, token):
        assert not is_valid_api_key_format(token)

    def test_non_string_is_invalid(self):
        assert not is_valid_api_key_format(None)
        assert not is_valid_api_key_format(12345)

    def test_looks_like_api_key(self):
        assert looks_like_api_key("gup_anything")
        assert not looks_like_api_key("eyJhbGciOi.session.token")
        assert not looks_like_api_key(None)
        assert not looks_like_api_key("")

    def test_extract_key_prefix(self):
        assert extract_key_prefix(VALID_TOKEN) == "gup_AbCd-_12"
        assert extract_key_prefix("gup_bad") is None
