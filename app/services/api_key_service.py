"""
API Key Service

Business rules for API key management on top of the ApiKeyRepository:
creation with default scopes and the active-key cap, listing, renaming and
rescoping, revocation (soft delete), deletion, and usage statistics.

The plaintext token is produced once by create_key and never stored or logged.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from app.api.schemas import ApiKeyUsageStats, EndpointCount, StatusCount
from app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from app.core.key_codec import generate_api_key
from app.core.scopes import DEFAULT_SCOPES, parse_scopes
from app.core.setting import settings
from app.core.validators import ensure_utc, utc_now, validate_key_expiry
from app.db.models import APIKey
from app.db.repositories.api_keys import ApiKeyRepository

logger = logging.getLogger(__name__)

KEY_NOT_FOUND = "API key not found"


def clean_key_name(name: str) -> str:
    """Strip a key name, rejecting one that is blank."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailedError("Validation failed", errors={"name": "Name must not be blank"})
    return cleaned


class APIKeyService:
    """
    Service for managing the API keys of a user.

    All lookups are scoped to the owning user: a key of another user is
    indistinguishable from a missing one.
    """

    def __init__(
        self,
        repository: ApiKeyRepository,
        max_active: Optional[int] = None,
        max_lifetime_days: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.repository = repository
        self.max_active = max_active or settings.API_KEY_MAX_ACTIVE
        self.max_lifetime_days = max_lifetime_days or settings.API_KEY_MAX_LIFETIME_DAYS
        self.clock = clock

    async def create_key(
        self,
        user_id: str,
        name: str,
        scopes: Optional[Iterable[str]] = None,
        expires_at: Optional[datetime] = None
    ) -> Tuple[APIKey, str]:
        """
        Create a new API key.

        Args:
            user_id: Owner of the key
            name: Human readable name
            scopes: Requested scopes; read + write when omitted
            expires_at: Optional expiry, in the future and at most one year ahead

        Returns:
            Tuple of (stored APIKey, plaintext token). The token is not recoverable later.

        Raises:
            ValidationFailedError: Invalid scope, too many active keys or bad expiry
        """
        granted = parse_scopes(scopes) if scopes is not None else list(DEFAULT_SCOPES)

        active = await self.repository.count_active_for_user(user_id)
        if active >= self.max_active:
            raise ValidationFailedError(
                f"Maximum number of API keys reached ({self.max_active}). Please delete some keys first."
            )

        now = self.clock()
        expires_at = validate_key_expiry(expires_at, self.max_lifetime_days, now=now)

        generated = generate_api_key()
        api_key = await self.repository.create(
            APIKey(
                user_id=user_id,
                name=clean_key_name(name),
                key_hash=generated.hash,
                key_prefix=generated.prefix,
                scopes=granted,
                is_active=True,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
        )

        logger.info(f"Created API key {api_key.key_prefix} ({api_key.id}) for user {user_id}")
        return api_key, generated.token

    async def list_keys(self, user_id: str) -> List[APIKey]:
        """All keys of a user, newest first."""
        return await self.repository.list_for_user(user_id)

    async def get_key(self, key_id: str, user_id: str) -> APIKey:
        api_key = await self.repository.get_for_user(key_id, user_id)
        if api_key is None:
            raise ResourceNotFoundError(KEY_NOT_FOUND)
        return api_key

    async def update_key(
        self,
        key_id: str,
        user_id: str,
        name: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None
    ) -> APIKey:
        """
        Rename and/or rescope a key.

        Raises:
            ResourceNotFoundError: Unknown key or key of another user
            ValidationFailedError: Invalid scope
        """
        api_key = await self.get_key(key_id, user_id)

        if name is not None:
            api_key.name = clean_key_name(name)
        if scopes is not None:
            api_key.scopes = parse_scopes(scopes)
        api_key.updated_at = self.clock()

        return await self.repository.save(api_key)

    async def revoke_key(self, key_id: str, user_id: str) -> None:
        """Deactivate a key, keeping its record and usage history."""
        if not await self.repository.deactivate(key_id, user_id, self.clock()):
            raise ResourceNotFoundError(KEY_NOT_FOUND)
        logger.info(f"Revoked API key {key_id} for user {user_id}")

    async def delete_key(self, key_id: str, user_id: str) -> None:
        """Permanently delete a key."""
        if not await self.repository.delete(key_id, user_id):
            raise ResourceNotFoundError(KEY_NOT_FOUND)
        logger.info(f"Deleted API key {key_id} for user {user_id}")

    async def get_usage_stats(self, user_id: str, key_id: Optional[str] = None) -> ApiKeyUsageStats:
        """
        Usage statistics across all keys of a user, or for one of them.

        Args:
            user_id: Owner of the keys
            key_id: Restrict to this key (must belong to the user)

        Returns:
            ApiKeyUsageStats with request totals, top 10 endpoints and the
            status code histogram (usages without a status are not counted there)
        """
        if key_id is not None:
            key_ids = [(await self.get_key(key_id, user_id)).id]
        else:
            key_ids = [api_key.id for api_key in await self.repository.list_for_user(user_id)]

        usage = await self.repository.list_usage(key_ids)

        now = self.clock()
        last_7_days = now - timedelta(days=7)
        last_30_days = now - timedelta(days=30)

        endpoints = Counter(u.endpoint for u in usage)
        statuses = Counter(u.response_status for u in usage if u.response_status)

        return ApiKeyUsageStats(
            total_requests=len(usage),
            last_7_days=sum(1 for u in usage if ensure_utc(u.created_at) >= last_7_days),
            last_30_days=sum(1 for u in usage if ensure_utc(u.created_at) >= last_30_days),
            top_endpoints=[
                EndpointCount(endpoint=endpoint, count=count)
                for endpoint, count in endpoints.most_common(10)
            ],
            status_codes=[
                StatusCount(status=status, count=count)
                for status, count in statuses.most_common()
            ],
        )
