"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse: the
analytics aggregator builds these models directly.

Design Principles:
- Request models: Define input validation
- Response models: Define output structure
- Every response is wrapped in the success envelope; every rejection in the
  error envelope
"""

from datetime import datetime
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from app.core.scopes import Scope

T = TypeVar("T")

# Surrounding whitespace is stripped before the length check
KeyName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


# --------------------------------------------------------------------------- #
# Envelopes
# --------------------------------------------------------------------------- #

class SuccessEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: str
    errors: Optional[dict[str, str]] = None
    message: Optional[str] = None


# --------------------------------------------------------------------------- #
# API keys
# --------------------------------------------------------------------------- #

class CreateApiKeyRequest(BaseModel):
    """Request model for API key creation. Scopes default to read + write."""
    name: KeyName = Field(..., description="Human readable key name")
    scopes: Optional[List[Scope]] = Field(default=None, description="Subset of read, write, admin")
    expires_at: Optional[datetime] = Field(default=None, description="Optional expiry, at most one year ahead")


class UpdateApiKeyRequest(BaseModel):
    name: Optional[KeyName] = None
    scopes: Optional[List[Scope]] = None


class ApiKeyResponse(BaseModel):
    """An API key as shown to its owner. Never includes the hash."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    key_prefix: str
    scopes: List[str]
    is_active: bool
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ApiKeyCreatedResponse(ApiKeyResponse):
    token: str = Field(..., description="Plaintext token, returned only once")


class EndpointCount(BaseModel):
    endpoint: str
    count: int


class StatusCount(BaseModel):
    status: int
    count: int


class ApiKeyUsageStats(BaseModel):
    total_requests: int = 0
    last_7_days: int = 0
    last_30_days: int = 0
    top_endpoints: List[EndpointCount] = Field(default_factory=list)
    status_codes: List[StatusCount] = Field(default_factory=list)


# --------------------------------------------------------------------------- #
# Analytics
# --------------------------------------------------------------------------- #

class CountEntry(BaseModel):
    """One histogram bucket."""
    label: str
    clicks: int
    percentage: float = 0.0


class TrafficSource(BaseModel):
    source: str
    type: str
    clicks: int


class DailyClicks(BaseModel):
    date: str
    mobile: int = 0
    desktop: int = 0
    tablet: int = 0
    unknown: int = 0
    total: int = 0


class HourlyClicks(BaseModel):
    hour: int
    clicks: int = 0


class BotVsHuman(BaseModel):
    human: int = 0
    bot: int = 0


class RecentClick(BaseModel):
    id: Optional[str] = None
    short_code: Optional[str] = None
    original_url: Optional[str] = None
    country: str
    browser: str
    device: str
    clicked_at: datetime
    is_bot: bool


class AnalyticsSummary(BaseModel):
    """Grouped click statistics. Every field has a zero value for "no data yet"."""
    total_clicks: int = 0
    unique_clicks: int = 0
    total_urls: int = 0
    active_urls: int = 0
    today_clicks: int = 0
    yesterday_clicks: int = 0
    this_week_clicks: int = 0
    this_month_clicks: int = 0
    top_countries: List[CountEntry] = Field(default_factory=list)
    top_browsers: List[CountEntry] = Field(default_factory=list)
    top_devices: List[CountEntry] = Field(default_factory=list)
    top_referrers: List[CountEntry] = Field(default_factory=list)
    top_languages: List[CountEntry] = Field(default_factory=list)
    referrer_types: List[CountEntry] = Field(default_factory=list)
    referrer_domains: List[CountEntry] = Field(default_factory=list)
    referrer_sources: List[CountEntry] = Field(default_factory=list)
    traffic_sources: List[TrafficSource] = Field(default_factory=list)
    clicks_by_day: List[DailyClicks] = Field(default_factory=list)
    clicks_by_hour: List[HourlyClicks] = Field(default_factory=list)
    bot_vs_human: BotVsHuman = Field(default_factory=BotVsHuman)
    recent_clicks: List[RecentClick] = Field(default_factory=list)


class UrlAnalytics(AnalyticsSummary):
    """Analytics for a single URL."""
    url_id: str
    short_code: str
    original_url: str
    title: Optional[str] = None
