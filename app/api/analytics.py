"""
FastAPI Endpoints for Click Analytics

Both endpoints require the `read` scope (sessions always pass). A URL that
does not exist and a URL owned by someone else both answer 404.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_scope
from app.api.schemas import AnalyticsSummary, SuccessEnvelope, UrlAnalytics
from app.core.exceptions import ValidationFailedError
from app.core.identity import Identity
from app.core.rate_limit import rate_limit
from app.core.scopes import Scope
from app.core.validators import sanitize_identifier
from app.db.session import get_session
from app.services.analytics_service import AnalyticsService

router = APIRouter(
    prefix="/api/analytics",
    dependencies=[Depends(rate_limit("analytics"))],
)


def get_analytics_service(session: AsyncSession = Depends(get_session)) -> AnalyticsService:
    return AnalyticsService(session)


@router.get(
    "",
    response_model=SuccessEnvelope[AnalyticsSummary],
    summary="Analytics across all URLs of the caller"
)
async def get_overall_analytics(
    identity: Identity = Depends(require_scope(Scope.READ)),
    service: AnalyticsService = Depends(get_analytics_service)
):
    summary = await service.get_overall_analytics(identity.user_id)
    return SuccessEnvelope(data=summary)


@router.get(
    "/{url_id}",
    response_model=SuccessEnvelope[UrlAnalytics],
    summary="Analytics of a single URL"
)
async def get_url_analytics(
    url_id: str,
    identity: Identity = Depends(require_scope(Scope.READ)),
    service: AnalyticsService = Depends(get_analytics_service)
):
    sanitized = sanitize_identifier(url_id)
    if not sanitized:
        raise ValidationFailedError("Invalid URL id", {"url_id": "Invalid URL id"})

    analytics = await service.get_url_analytics(sanitized, identity.user_id)
    return SuccessEnvelope(data=analytics)
