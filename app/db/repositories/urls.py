"""
URL Repository

Ownership-scoped reads over the urls table, used to decide which clicks a
user may aggregate.
"""

from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError
from app.db.models import ShortURL


class UrlRepository(Protocol):
    async def list_for_user(self, user_id: str) -> List[ShortURL]: ...

    async def get_for_user(self, url_id: str, user_id: str) -> Optional[ShortURL]: ...


class SQLModelUrlRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_user(self, user_id: str) -> List[ShortURL]:
        try:
            statement = select(ShortURL).where(ShortURL.user_id == user_id)
            result = await self.session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch URLs", original_error=e)

    async def get_for_user(self, url_id: str, user_id: str) -> Optional[ShortURL]:
        """Return the URL only if it belongs to `user_id`."""
        try:
            statement = select(ShortURL).where(ShortURL.id == url_id, ShortURL.user_id == user_id)
            result = await self.session.execute(statement)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch URL", original_error=e)
