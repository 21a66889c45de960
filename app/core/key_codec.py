"""
API Key Codec

Generates, hashes and shape-checks API key bearer tokens.

Token format: gup_<8-char prefix>_<32-char payload>
- payload: 24 random bytes, URL-safe base64 without padding (32 chars)
- prefix: first 8 chars of the payload, safe to display
- only the SHA-256 hex digest of the full token is ever stored

Everything here is pure and free of I/O, so malformed tokens are rejected
before any database lookup.
"""

import base64
import hashlib
import re
import secrets
from typing import NamedTuple, Optional

KEY_NAMESPACE = "gup"
PREFIX_LENGTH = 8
PAYLOAD_BYTES = 24

API_KEY_PATTERN = re.compile(r"^gup_[A-Za-z0-9_-]{8}_[A-Za-z0-9_-]{32}$")


class GeneratedKey(NamedTuple):
    """A freshly generated key. `token` must only be shown once."""
    token: str
    hash: str
    prefix: str


def _random_payload() -> str:
    raw = secrets.token_bytes(PAYLOAD_BYTES)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_api_key() -> GeneratedKey:
    """
    Generate a new API key.

    Returns:
        GeneratedKey with the plaintext token, its hash and the display prefix
        (e.g. "gup_Ab3dE_f9")
    """
    payload = _random_payload()
    short = payload[:PREFIX_LENGTH]
    token = f"{KEY_NAMESPACE}_{short}_{payload}"
    return GeneratedKey(
        token=token,
        hash=hash_api_key(token),
        prefix=f"{KEY_NAMESPACE}_{short}",
    )


def hash_api_key(token: str) -> str:
    """Hash an API key for storage or lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_valid_api_key_format(token: str) -> bool:
    """
    Cheap structural check performed before any lookup.

    Args:
        token: The presented bearer value

    Returns:
        True if the token matches gup_[8 chars]_[32 chars] over the
        URL-safe base64 alphabet
    """
    if not isinstance(token, str):
        return False
    return API_KEY_PATTERN.match(token) is not None


def looks_like_api_key(value: Optional[str]) -> bool:
    """True if the value claims to be an API key (carries the gup_ namespace)."""
    return bool(value) and value.startswith(f"{KEY_NAMESPACE}_")


def extract_key_prefix(token: str) -> Optional[str]:
    """Return the display prefix (gup_xxxxxxxx) of a well-formed token."""
    if not is_valid_api_key_format(token):
        return None
    return token[:len(KEY_NAMESPACE) + 1 + PREFIX_LENGTH]
