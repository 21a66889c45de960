"""
API Key Repository

Narrow, typed access to the api_keys and api_key_usage tables. The
authenticator and APIKeyService depend on the ApiKeyRepository protocol;
SQLModelApiKeyRepository is the database-backed implementation.

Every SQLAlchemy failure is wrapped in DatabaseError so callers never see
store-level detail.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError
from app.db.models import APIKey, APIKeyUsage

logger = logging.getLogger(__name__)


class ApiKeyRepository(Protocol):
    async def get_by_hash(self, key_hash: str) -> Optional[APIKey]: ...

    async def get_for_user(self, key_id: str, user_id: str) -> Optional[APIKey]: ...

    async def list_for_user(self, user_id: str) -> List[APIKey]: ...

    async def count_active_for_user(self, user_id: str) -> int: ...

    async def create(self, api_key: APIKey) -> APIKey: ...

    async def save(self, api_key: APIKey) -> APIKey: ...

    async def deactivate(self, key_id: str, user_id: str, at: datetime) -> bool: ...

    async def delete(self, key_id: str, user_id: str) -> bool: ...

    async def touch_last_used(self, key_id: str, at: datetime) -> None: ...

    async def record_usage(self, usage: APIKeyUsage) -> None: ...

    async def list_usage(self, key_ids: Sequence[str]) -> List[APIKeyUsage]: ...


class SQLModelApiKeyRepository:
    """ApiKeyRepository backed by an async SQLModel session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_hash(self, key_hash: str) -> Optional[APIKey]:
        """Exact-match lookup by token hash (inactive keys included)."""
        try:
            statement = select(APIKey).where(APIKey.key_hash == key_hash)
            result = await self.session.execute(statement)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to look up API key", original_error=e)

    async def get_for_user(self, key_id: str, user_id: str) -> Optional[APIKey]:
        try:
            statement = select(APIKey).where(APIKey.id == key_id, APIKey.user_id == user_id)
            result = await self.session.execute(statement)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch API key", original_error=e)

    async def list_for_user(self, user_id: str) -> List[APIKey]:
        """All keys of a user, newest first."""
        try:
            statement = (
                select(APIKey)
                .where(APIKey.user_id == user_id)
                .order_by(APIKey.created_at.desc())
            )
            result = await self.session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch API keys", original_error=e)

    async def count_active_for_user(self, user_id: str) -> int:
        try:
            statement = (
                select(func.count(APIKey.id))
                .where(APIKey.user_id == user_id, APIKey.is_active == True)  # noqa: E712
            )
            result = await self.session.execute(statement)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to count API keys", original_error=e)

    async def create(self, api_key: APIKey) -> APIKey:
        try:
            self.session.add(api_key)
            await self.session.flush()
            await self.session.refresh(api_key)
            return api_key
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to create API key", original_error=e)

    async def save(self, api_key: APIKey) -> APIKey:
        try:
            self.session.add(api_key)
            await self.session.flush()
            await self.session.refresh(api_key)
            return api_key
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to update API key", original_error=e)

    async def deactivate(self, key_id: str, user_id: str, at: datetime) -> bool:
        """Soft delete. Returns False if no key of this user matched."""
        try:
            statement = (
                update(APIKey)
                .where(APIKey.id == key_id, APIKey.user_id == user_id)
                .values(is_active=False, updated_at=at)
            )
            result = await self.session.execute(statement)
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to revoke API key", original_error=e)

    async def delete(self, key_id: str, user_id: str) -> bool:
        try:
            statement = delete(APIKey).where(APIKey.id == key_id, APIKey.user_id == user_id)
            result = await self.session.execute(statement)
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError("Failed to delete API key", original_error=e)

    async def touch_last_used(self, key_id: str, at: datetime) -> None:
        try:
            statement = update(APIKey).where(APIKey.id == key_id).values(last_used_at=at)
            await self.session.execute(statement)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to update API key last use", original_error=e)

    async def record_usage(self, usage: APIKeyUsage) -> None:
        try:
            self.session.add(usage)
            await self.session.flush()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to record API key usage", original_error=e)

    async def list_usage(self, key_ids: Sequence[str]) -> List[APIKeyUsage]:
        if not key_ids:
            return []
        try:
            statement = (
                select(APIKeyUsage)
                .where(APIKeyUsage.api_key_id.in_(list(key_ids)))
                .order_by(APIKeyUsage.created_at.desc())
            )
            result = await self.session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch API key usage", original_error=e)
