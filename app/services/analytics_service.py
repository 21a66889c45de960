"""
Analytics Service

Turns raw click rows into grouped statistics for the dashboard and the
analytics API.

Design Decisions:
- AnalyticsAggregator is pure: it folds a fixed snapshot of clicks into an
  AnalyticsSummary using local accumulators only, so it is safe to run for
  many requests in parallel and returns identical output for identical input
- AnalyticsService does the single bounded read (ANALYTICS_MAX_ROWS, newest
  first) and hands the snapshot to the aggregator
- Time windows are independent predicates over the full snapshot: "this week"
  is never derived from "today"
- Missing dimension values are bucketed as "Unknown"/"Direct", never dropped
- No data is not an error: empty input produces a zero-valued summary with
  dense (zero-filled) daily and hourly series
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    AnalyticsSummary,
    BotVsHuman,
    CountEntry,
    DailyClicks,
    HourlyClicks,
    RecentClick,
    TrafficSource,
    UrlAnalytics,
)
from app.core.exceptions import ResourceNotFoundError
from app.core.setting import settings
from app.core.validators import ensure_utc, utc_now
from app.db.models import Click, ShortURL
from app.db.repositories.clicks import ClickEventRepository, SQLModelClickEventRepository
from app.db.repositories.urls import SQLModelUrlRepository, UrlRepository

logger = logging.getLogger(__name__)

TOP_N = 10
TOP_N_REFERRER_DETAIL = 15
DAILY_SERIES_DAYS = 30
RECENT_CLICKS_OVERALL = 10
RECENT_CLICKS_PER_URL = 20

UNKNOWN = "Unknown"
DIRECT = "Direct"

DEVICE_CLASSES = ("mobile", "desktop", "tablet")

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "hi": "Hindi",
    "nl": "Dutch",
    "sv": "Swedish",
    "da": "Danish",
    "no": "Norwegian",
    "fi": "Finnish",
    "pl": "Polish",
    "tr": "Turkish",
    "th": "Thai",
}

REFERRER_TYPE_NAMES: Dict[str, str] = {
    "direct": "Direct",
    "social": "Social Media",
    "search": "Search Engine",
    "website": "Other Website",
    "email": "Email",
    "ad": "Advertisement",
}


def percentage(count: int, total: int) -> float:
    """count/total as a percentage rounded to one decimal; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return round(count * 100.0 / total, 1)


def language_label(accept_language: Optional[str]) -> str:
    """
    Display name of the primary language of an Accept-Language header.

    "en-US,en;q=0.9" -> "English"; unmapped codes are upper-cased ("xx" -> "XX").
    """
    if not accept_language:
        return UNKNOWN
    primary = accept_language.split(",")[0].split(";")[0].strip().split("-")[0].lower()
    if not primary:
        return UNKNOWN
    return LANGUAGE_NAMES.get(primary, primary.upper())


def referrer_type_label(referer_type: Optional[str]) -> str:
    value = referer_type or "direct"
    return REFERRER_TYPE_NAMES.get(value, value[:1].upper() + value[1:])


def device_class(device_type: Optional[str]) -> str:
    """Map a raw device type onto mobile/desktop/tablet/unknown."""
    value = (device_type or "").lower()
    return value if value in DEVICE_CLASSES else "unknown"


def _top(counter: Counter, limit: int, total: int) -> List[CountEntry]:
    # most_common is a stable sort: ties keep scan order
    return [
        CountEntry(label=label, clicks=clicks, percentage=percentage(clicks, total))
        for label, clicks in counter.most_common(limit)
    ]


class AnalyticsAggregator:
    """
    Folds a snapshot of clicks into an AnalyticsSummary.

    `now` pins the reference instant, so the same snapshot always yields the
    same summary.
    """

    def __init__(self, now: Optional[datetime] = None):
        self.now = ensure_utc(now) if now is not None else utc_now()
        self.today_start = self.now.replace(hour=0, minute=0, second=0, microsecond=0)
        self.yesterday_start = self.today_start - timedelta(days=1)
        self.week_start = self.now - timedelta(days=7)
        self.month_start = self.today_start.replace(day=1)
        self.first_series_day: date = self.today_start.date() - timedelta(days=DAILY_SERIES_DAYS - 1)

    def summarize(
        self,
        clicks: Sequence[Click],
        urls: Iterable[ShortURL] = (),
        recent_limit: int = RECENT_CLICKS_OVERALL
    ) -> AnalyticsSummary:
        """
        Build the summary for a set of URLs.

        Args:
            clicks: Click snapshot, newest first
            urls: The URLs the clicks belong to (for totals and the recent-click join)
            recent_limit: Size of the recent clicks slice

        Returns:
            AnalyticsSummary; zero-valued when `clicks` is empty
        """
        urls = list(urls)
        return AnalyticsSummary(**self._fold(clicks, urls, recent_limit))

    def summarize_url(self, url: ShortURL, clicks: Sequence[Click]) -> UrlAnalytics:
        """Build the summary of a single URL (recent slice of 20)."""
        fields = self._fold(clicks, [url], RECENT_CLICKS_PER_URL)
        return UrlAnalytics(
            url_id=url.id,
            short_code=url.short_code,
            original_url=url.original_url,
            title=url.title,
            **fields
        )

    def _fold(self, clicks: Sequence[Click], urls: List[ShortURL], recent_limit: int) -> dict:
        total = len(clicks)

        countries: Counter = Counter()
        browsers: Counter = Counter()
        devices: Counter = Counter()
        referrers: Counter = Counter()
        languages: Counter = Counter()
        referrer_types: Counter = Counter()
        referrer_domains: Counter = Counter()
        referrer_sources: Counter = Counter()
        traffic: Counter = Counter()
        traffic_types: Dict[str, str] = {}

        daily: Dict[date, Dict[str, int]] = {
            self.first_series_day + timedelta(days=i): {cls: 0 for cls in (*DEVICE_CLASSES, "unknown")}
            for i in range(DAILY_SERIES_DAYS)
        }
        hourly = [0] * 24

        today = yesterday = this_week = this_month = 0
        bots = 0
        unique_ips = set()

        for click in clicks:
            clicked_at = ensure_utc(click.clicked_at)

            if clicked_at >= self.today_start:
                today += 1
                hourly[clicked_at.hour] += 1
            if self.yesterday_start <= clicked_at < self.today_start:
                yesterday += 1
            if clicked_at >= self.week_start:
                this_week += 1
            if clicked_at >= self.month_start:
                this_month += 1

            bucket = daily.get(clicked_at.date())
            if bucket is not None:
                bucket[device_class(click.device_type)] += 1

            countries[click.country_name or UNKNOWN] += 1
            browsers[click.browser_name or UNKNOWN] += 1
            devices[click.device_type or UNKNOWN] += 1
            referrers[click.referer_source or click.referer_type or DIRECT] += 1
            languages[language_label(click.accept_language)] += 1
            referrer_types[referrer_type_label(click.referer_type)] += 1
            referrer_domains[click.referer_domain or DIRECT] += 1

            source = click.referer_source or DIRECT
            referrer_sources[source] += 1
            traffic[source] += 1
            traffic_types.setdefault(source, click.referer_type or "direct")

            if click.is_bot:
                bots += 1
            if click.ip_address:
                unique_ips.add(click.ip_address)

        url_by_id = {url.id: url for url in urls}

        return {
            "total_clicks": total,
            "unique_clicks": len(unique_ips),
            "total_urls": len(urls),
            "active_urls": sum(1 for url in urls if url.is_active),
            "today_clicks": today,
            "yesterday_clicks": yesterday,
            "this_week_clicks": this_week,
            "this_month_clicks": this_month,
            "top_countries": _top(countries, TOP_N, total),
            "top_browsers": _top(browsers, TOP_N, total),
            "top_devices": _top(devices, TOP_N, total),
            "top_referrers": _top(referrers, TOP_N, total),
            "top_languages": _top(languages, TOP_N, total),
            "referrer_types": _top(referrer_types, TOP_N, total),
            "referrer_domains": _top(referrer_domains, TOP_N_REFERRER_DETAIL, total),
            "referrer_sources": _top(referrer_sources, TOP_N_REFERRER_DETAIL, total),
            "traffic_sources": [
                TrafficSource(source=source, type=traffic_types[source], clicks=count)
                for source, count in traffic.most_common(TOP_N)
            ],
            "clicks_by_day": [
                DailyClicks(date=day.isoformat(), total=sum(counts.values()), **counts)
                for day, counts in daily.items()
            ],
            "clicks_by_hour": [HourlyClicks(hour=hour, clicks=count) for hour, count in enumerate(hourly)],
            "bot_vs_human": BotVsHuman(human=total - bots, bot=bots),
            "recent_clicks": [
                self._recent(click, url_by_id.get(click.url_id)) for click in clicks[:recent_limit]
            ],
        }

    @staticmethod
    def _recent(click: Click, url: Optional[ShortURL]) -> RecentClick:
        return RecentClick(
            id=click.id,
            short_code=click.short_code,
            original_url=url.original_url if url else "",
            country=click.country_name or UNKNOWN,
            browser=click.browser_name or UNKNOWN,
            device=click.device_type or UNKNOWN,
            clicked_at=ensure_utc(click.clicked_at),
            is_bot=bool(click.is_bot),
        )


class AnalyticsService:
    """
    Fetches click snapshots and aggregates them.

    Repositories are injectable; by default they are built on the request session.
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        urls: Optional[UrlRepository] = None,
        clicks: Optional[ClickEventRepository] = None,
        max_rows: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.urls = urls or SQLModelUrlRepository(session)
        self.clicks = clicks or SQLModelClickEventRepository(session)
        self.max_rows = max_rows or settings.ANALYTICS_MAX_ROWS
        self.clock = clock

    async def get_overall_analytics(self, user_id: str) -> AnalyticsSummary:
        """Analytics across every URL owned by `user_id`."""
        urls = await self.urls.list_for_user(user_id)
        clicks = await self.clicks.fetch_for_urls([url.id for url in urls], self.max_rows)

        if len(clicks) >= self.max_rows:
            logger.info(f"Analytics for user {user_id} truncated at {self.max_rows} clicks")

        return AnalyticsAggregator(now=self.clock()).summarize(clicks, urls)

    async def get_url_analytics(self, url_id: str, user_id: str) -> UrlAnalytics:
        """
        Analytics for one URL.

        Raises:
            ResourceNotFoundError: If the URL does not exist or belongs to another user
        """
        url = await self.urls.get_for_user(url_id, user_id)
        if not url:
            raise ResourceNotFoundError("URL not found or access denied")

        clicks = await self.clicks.fetch_for_urls([url.id], self.max_rows)
        return AnalyticsAggregator(now=self.clock()).summarize_url(url, clicks)
