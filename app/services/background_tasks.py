"""
Background Task Helpers

Provides helper functions for background tasks that create their own database sessions.
Background tasks cannot use the endpoint's session as it's closed after the endpoint returns.

API key usage logging is best-effort: it is submitted to FastAPI's
BackgroundTasks, runs after the response has been sent, and any failure is
logged and discarded so it can never affect the request that triggered it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.validators import utc_now
from app.db.models import APIKeyUsage
from app.db.repositories.api_keys import SQLModelApiKeyRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


@dataclass(frozen=True)
class ApiKeyUsageEvent:
    """One successful API key authentication."""
    api_key_id: str
    endpoint: str
    method: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    response_status: Optional[int] = None
    occurred_at: datetime = field(default_factory=utc_now)


class UsageRecorder(Protocol):
    def submit(self, event: ApiKeyUsageEvent) -> None:
        ...


async def record_api_key_usage_background(
    session_factory: SessionFactory,
    event: ApiKeyUsageEvent
) -> None:
    """
    Background task to log an API key usage and bump the key's last use.

    Creates its own database session as endpoint session is closed.

    Args:
        session_factory: Callable returning a new AsyncSession
        event: The usage to record
    """
    try:
        async with session_factory() as session:
            repository = SQLModelApiKeyRepository(session)
            await repository.record_usage(
                APIKeyUsage(
                    api_key_id=event.api_key_id,
                    endpoint=event.endpoint,
                    method=event.method,
                    ip_address=event.ip_address,
                    user_agent=event.user_agent,
                    response_status=event.response_status,
                    created_at=event.occurred_at,
                )
            )
            await repository.touch_last_used(event.api_key_id, event.occurred_at)
            await session.commit()
    except Exception as e:
        logger.error(
            f"Failed to record usage for API key {event.api_key_id}: {str(e)}",
            exc_info=True
        )


class BackgroundUsageRecorder:
    """UsageRecorder that defers the write to FastAPI BackgroundTasks."""

    def __init__(self, background_tasks: BackgroundTasks, session_factory: SessionFactory):
        self.background_tasks = background_tasks
        self.session_factory = session_factory

    def submit(self, event: ApiKeyUsageEvent) -> None:
        self.background_tasks.add_task(record_api_key_usage_background, self.session_factory, event)
