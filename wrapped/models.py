from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

TICKS_PER_SECOND = 10_000_000


class Person(BaseModel):
    """Cast or crew entry attached to a catalog item."""

    name: Optional[str] = None
    id: Optional[str] = None
    role: Optional[str] = None
    type: Optional[str] = None
    primary_image_tag: Optional[str] = None

    @classmethod
    def from_jellyfin(cls, data: dict) -> "Person":
        return cls(
            name=data.get("Name"),
            id=data.get("Id"),
            role=data.get("Role"),
            type=data.get("Type"),
            primary_image_tag=data.get("PrimaryImageTag"),
        )


class ContentItem(BaseModel):
    """Resolved catalog metadata for a movie, episode, season, show, etc."""

    id: str
    parent_id: Optional[str] = None
    name: Optional[str] = None
    date: Optional[str] = None
    community_rating: Optional[float] = None
    production_year: Optional[int] = None
    people: list[Person] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    duration_seconds: int = 0

    @classmethod
    def from_jellyfin(cls, data: dict) -> "ContentItem":
        ticks = data.get("RunTimeTicks") or 0
        return cls(
            id=data.get("Id", ""),
            parent_id=data.get("ParentId"),
            name=data.get("Name"),
            date=data.get("PremiereDate"),
            community_rating=data.get("CommunityRating"),
            production_year=data.get("ProductionYear"),
            people=[Person.from_jellyfin(p) for p in data.get("People") or [] if p],
            genres=data.get("Genres") or [],
            duration_seconds=int(ticks) // TICKS_PER_SECOND,
        )

    def has_person(self, name: str) -> bool:
        return any(person.name == name for person in self.people)


class MovieWithStats(ContentItem):
    play_count: int = 0
    completed_watches: int = 1
    total_watch_time_seconds: int = 0


class ShowWithStats(BaseModel):
    show_name: str
    episode_count: int
    playback_time: int
    item: ContentItem


class NameCount(BaseModel):
    name: str
    count: int


class DeviceStats(BaseModel):
    device_usage: list[NameCount]
    client_usage: list[NameCount]
    os_usage: list[NameCount]


class PunchCardCell(BaseModel):
    day_of_week: int
    hour: int
    count: int


class CalendarDay(BaseModel):
    day: str
    value: int


class LiveTvChannel(BaseModel):
    channel_name: str
    duration: int


class TopShow(BaseModel):
    item: ContentItem
    watch_time_minutes: float


class MonthlyShowStats(BaseModel):
    month: datetime
    top_show: TopShow
    total_watch_time_minutes: float


class EpisodeStats(BaseModel):
    total: int = 0
    watched: int = 0


class UnfinishedShow(BaseModel):
    item: ContentItem
    watched_episodes: int
    total_episodes: int
    last_watched_date: datetime


class ActorStats(BaseModel):
    name: str
    count: int
    movie_count: int
    show_count: int
    details: Person
    seen_in_movies: list[ContentItem]
    seen_in_shows: list[ContentItem]


class Timeframe(BaseModel):
    """Date range scoping a query: DateCreated > start AND DateCreated <= end."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_order(self) -> "Timeframe":
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class JellyfinCredentials(BaseModel):
    server_url: str
    api_key: str
    user_id: str
    user_token: str


class SessionRecord(BaseModel):
    jti: str
    upstream_user_id: str
    upstream_token: str
    username: str
    created_at: float = 0.0


class AuthResult(BaseModel):
    user_id: str
    username: str
    access_token: str


class StreakStats(BaseModel):
    longest_streak: int
    longest_break: int
    current_streak: int
    streak_start_date: Optional[date] = None


class TimeBreakdown(BaseModel):
    early_bird: int
    day_watcher: int
    prime_timer: int
    night_owl: int


class TimePersonality(BaseModel):
    personality: str
    breakdown: TimeBreakdown
    peak_time: str


class PeriodCount(BaseModel):
    period: str
    count: int
    percentage: int


class DecadeBreakdown(BaseModel):
    period_breakdown: list[PeriodCount]
    average_year: int
    top_period: str
    personality: str
    message: str


class GenreCount(BaseModel):
    genre: str
    count: int


class MonthlyWatchTime(BaseModel):
    month: datetime
    watch_time_minutes: int
    top_genre: Optional[str] = None


class MonthlyGenres(BaseModel):
    month: datetime
    genres: list[GenreCount]


class WatchEvolution(BaseModel):
    monthly_data: list[MonthlyWatchTime]
    genre_evolution: list[MonthlyGenres]


class ViewingPersonality(BaseModel):
    personality: str
    description: str
    traits: list[str]


class Comparison(BaseModel):
    label: str
    value: int
    unit: str


class FunComparisons(BaseModel):
    comparisons: list[Comparison]
