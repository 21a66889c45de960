"""
Click Event Repository

Read-only access to the clicks table for the analytics aggregator.
"""

from typing import List, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError
from app.db.models import Click


class ClickEventRepository(Protocol):
    async def fetch_for_urls(self, url_ids: Sequence[str], limit: int) -> List[Click]: ...


class SQLModelClickEventRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def fetch_for_urls(self, url_ids: Sequence[str], limit: int) -> List[Click]:
        """
        Fetch clicks for a set of URLs, newest first.

        Args:
            url_ids: Owning URL ids; an empty set short-circuits to no rows
            limit: Hard row cap bounding memory and latency

        Returns:
            At most `limit` clicks ordered by clicked_at descending
        """
        if not url_ids:
            return []
        try:
            statement = (
                select(Click)
                .where(Click.url_id.in_(list(url_ids)))
                .order_by(Click.clicked_at.desc())
                .limit(limit)
            )
            result = await self.session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to fetch click events", original_error=e)
