"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs
that are not expressible as plain schema constraints.

Security Considerations:
- Path identifiers are restricted to a small character set before they reach a query
- Length limits prevent oversized inputs
- Expiry bounds keep API keys from living forever
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.exceptions import ValidationFailedError

IDENTIFIER_PATTERN = re.compile(r"^[0-9A-Za-z_-]+$")
MAX_IDENTIFIER_LENGTH = 64


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a timestamp to timezone-aware UTC.

    SQLite hands back naive datetimes (stored as UTC wall time); PostgreSQL
    returns aware ones. Both compare correctly after this.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sanitize_identifier(identifier: str) -> Optional[str]:
    """
    Sanitize and validate a resource identifier taken from the URL path.

    Identifiers (key ids, url ids) are UUIDs or similar tokens: only
    alphanumerics, '-' and '_' are accepted.

    Args:
        identifier: The raw path value

    Returns:
        Sanitized identifier if valid, None otherwise
    """
    if not identifier or not isinstance(identifier, str):
        return None

    identifier = identifier.strip()

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        return None

    if not IDENTIFIER_PATTERN.match(identifier):
        return None

    return identifier


def validate_key_expiry(
    expires_at: Optional[datetime],
    max_lifetime_days: int = 365,
    now: Optional[datetime] = None
) -> Optional[datetime]:
    """
    Validate the requested expiry of a new API key.

    Args:
        expires_at: Requested expiry (naive values are treated as UTC)
        max_lifetime_days: Furthest the expiry may be in the future
        now: Reference time (defaults to the current UTC time)

    Returns:
        The expiry as aware UTC, or None when the key never expires

    Raises:
        ValidationFailedError: If the expiry is not in the future or too far out
    """
    if expires_at is None:
        return None

    now = now or utc_now()
    expires_at = ensure_utc(expires_at)

    if expires_at <= now:
        raise ValidationFailedError(
            "Expiration date must be in the future",
            {"expires_at": "Expiration date must be in the future"}
        )

    if expires_at > now + timedelta(days=max_lifetime_days):
        raise ValidationFailedError(
            "Expiration date cannot be more than 1 year from now",
            {"expires_at": f"Expiration date cannot be more than {max_lifetime_days} days from now"}
        )

    return expires_at
