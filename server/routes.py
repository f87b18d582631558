import logging
import re
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest

from wrapped import insights
from wrapped.analytics import PlaybackAnalytics
from wrapped.config import settings
from wrapped.models import (
    ActorStats,
    CalendarDay,
    ContentItem,
    DecadeBreakdown,
    DeviceStats,
    FunComparisons,
    JellyfinCredentials,
    LiveTvChannel,
    MonthlyShowStats,
    MovieWithStats,
    PunchCardCell,
    SessionRecord,
    ShowWithStats,
    StreakStats,
    Timeframe,
    TimePersonality,
    UnfinishedShow,
    ViewingPersonality,
    WatchEvolution,
)
from wrapped.session_cache import session_cache

from .auth import current_session

logger = logging.getLogger(__name__)

router = APIRouter()
api = APIRouter(prefix="/api")

ACTIVE_SESSIONS = Gauge("wrapped_active_sessions", "Cached login sessions")

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidDateError(ValueError):
    """A date parameter is not a real YYYY-MM-DD calendar date."""


def parse_date(value: str, field: str) -> date:
    """Validate a YYYY-MM-DD string; nothing else may reach query text."""
    if not value or not DATE_PATTERN.match(value):
        raise InvalidDateError(f"Invalid {field} format. Expected YYYY-MM-DD")
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        raise InvalidDateError(f"Invalid {field} format. Expected YYYY-MM-DD")
    # Single-day windows need the following day to exist.
    if parsed == date.max:
        raise InvalidDateError(f"Invalid {field}: date out of range")
    return parsed


def parse_timeframe(
    start_date: Optional[str], end_date: Optional[str], today: Optional[date] = None
) -> Timeframe:
    """Build a timeframe, defaulting to the current calendar year."""
    year = (today or date.today()).year
    start = parse_date(start_date, "startDate") if start_date else date(year, 1, 1)
    end = parse_date(end_date, "endDate") if end_date else date(year, 12, 31)
    if start > end:
        raise InvalidDateError("Invalid timeframe: startDate is after endDate")
    return Timeframe(start_date=start, end_date=end)


def timeframe_params(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> Timeframe:
    return parse_timeframe(start_date, end_date)


def build_analytics(session: SessionRecord) -> PlaybackAnalytics:
    return PlaybackAnalytics.for_credentials(
        JellyfinCredentials(
            server_url=settings.jellyfin_base_url,
            api_key=settings.jellyfin_api_key,
            user_id=session.upstream_user_id,
            user_token=session.upstream_token,
        )
    )


def get_analytics(session: SessionRecord = Depends(current_session)) -> PlaybackAnalytics:
    return build_analytics(session)


@api.get("/user")
async def current_user(session: SessionRecord = Depends(current_session)):
    return {"id": session.upstream_user_id, "name": session.username}


@api.get("/movies")
async def movies(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[MovieWithStats]:
    return await analytics.list_movies(timeframe)


@api.get("/shows")
async def shows(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[ShowWithStats]:
    return await analytics.list_shows(timeframe)


@api.get("/audio")
async def audio(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[ContentItem]:
    return await analytics.list_audio(timeframe)


@api.get("/music-videos")
async def music_videos(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[ContentItem]:
    return await analytics.list_music_videos(timeframe)


@api.get("/live-tv")
async def live_tv(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[LiveTvChannel]:
    return await analytics.list_live_tv_channels(timeframe)


@api.get("/device-stats")
async def device_stats(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> DeviceStats:
    return await analytics.get_device_stats(timeframe)


@api.get("/punch-card")
async def punch_card(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[PunchCardCell]:
    return await analytics.get_punch_card(timeframe)


@api.get("/calendar")
async def calendar(analytics: PlaybackAnalytics = Depends(get_analytics)) -> list[CalendarDay]:
    return await analytics.get_calendar()


@api.get("/monthly-shows")
async def monthly_shows(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[MonthlyShowStats]:
    return await analytics.get_monthly_shows(timeframe)


@api.get("/unfinished-shows")
async def unfinished_shows(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[UnfinishedShow]:
    return await analytics.get_unfinished_shows(timeframe)


@api.get("/actors")
async def actors(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[ActorStats]:
    return await analytics.list_favorite_actors(timeframe)


@api.get("/watched-on-date")
async def watched_on_date(
    day: Optional[str] = Query(None, alias="date"),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> list[ContentItem]:
    if not day:
        raise InvalidDateError("date parameter is required")
    return await analytics.get_watched_on_date(parse_date(day, "date"))


@api.get("/streaks")
async def streaks(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> StreakStats:
    return await insights.get_streaks(analytics, timeframe)


@api.get("/time-personality")
async def time_personality(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> TimePersonality:
    return await insights.get_time_personality(analytics, timeframe)


@api.get("/decades")
async def decades(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> DecadeBreakdown:
    return await insights.get_decade_breakdown(analytics, timeframe)


@api.get("/watch-evolution")
async def watch_evolution(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> WatchEvolution:
    return await insights.get_watch_evolution(analytics, timeframe)


@api.get("/personality")
async def personality(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> ViewingPersonality:
    return await insights.get_viewing_personality(analytics, timeframe)


@api.get("/comparisons")
async def comparisons(
    timeframe: Timeframe = Depends(timeframe_params),
    analytics: PlaybackAnalytics = Depends(get_analytics),
) -> FunComparisons:
    return await insights.get_fun_comparisons(analytics, timeframe)


@router.get("/health")
async def health():
    """Basic health check."""
    return {"status": "ok", "active_sessions": len(session_cache)}


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    ACTIVE_SESSIONS.set(len(session_cache))
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
