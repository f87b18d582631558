import logging
import re
from datetime import date, datetime, timezone
from typing import Iterable, Optional

import httpx
from prometheus_client import Counter

from .content_tree import ContentTree
from .jellyfin_client import JellyfinClient
from .models import (
    ActorStats,
    CalendarDay,
    ContentItem,
    DeviceStats,
    JellyfinCredentials,
    LiveTvChannel,
    MonthlyShowStats,
    MovieWithStats,
    NameCount,
    Person,
    PunchCardCell,
    ShowWithStats,
    Timeframe,
    TopShow,
    UnfinishedShow,
)
from .playback_reporting import PlaybackReportingClient, QueryResult, as_float, as_int, as_str
from .queries import ItemType, PlaybackQueries

logger = logging.getLogger(__name__)

# Order matters: the first matching pattern wins.
OS_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("Windows", re.compile(r"windows|win\d+|pc", re.IGNORECASE)),
    ("macOS", re.compile(r"mac|macos|osx", re.IGNORECASE)),
    ("iOS", re.compile(r"iphone|ipad|ios", re.IGNORECASE)),
    ("Android", re.compile(r"android", re.IGNORECASE)),
    ("Linux", re.compile(r"linux|ubuntu|debian|fedora", re.IGNORECASE)),
    ("Chrome OS", re.compile(r"chromebook|chrome\s?os", re.IGNORECASE)),
    ("Smart TV", re.compile(r"tv|roku|firestick|chromecast|apple\s?tv", re.IGNORECASE)),
]
OTHER_OS = "Other"
OS_BUCKETS = [name for name, _ in OS_PATTERNS] + [OTHER_OS]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ORPHANED_ITEMS = Counter(
    "wrapped_orphaned_items_total", "Played items that could not be placed under a show"
)


def classify_os(device_name: str) -> str:
    """Map a device name onto one of the OS buckets."""
    for os_name, pattern in OS_PATTERNS:
        if pattern.search(device_name or ""):
            return os_name
    return OTHER_OS


def completed_watches(total_watch_time: int, duration_seconds: int, play_count: int) -> int:
    """Estimate full viewings from watch time, never less than one."""
    if duration_seconds > 0:
        watches = round(total_watch_time / duration_seconds)
    else:
        watches = play_count
    return max(1, watches)


def clamp_play_duration(play_duration: int, runtime_seconds: int) -> int:
    """Bound a single play between zero and the item's runtime, when known."""
    bounded = max(0, play_duration)
    return min(bounded, runtime_seconds or bounded)


def parse_activity_date(value: str) -> Optional[datetime]:
    """Parse a DateCreated cell, assuming UTC when no offset is present."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(value[:19], "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def month_start(month: str) -> Optional[datetime]:
    """Turn a ``YYYY-MM`` bucket into noon UTC on the first of that month."""
    try:
        year, mon = (int(part) for part in month.split("-", 1))
        return datetime(year, mon, 1, 12, tzinfo=timezone.utc)
    except (AttributeError, ValueError):
        return None


def _unique_ids(result: QueryResult, column: str = "ItemId") -> list[str]:
    ids = (as_str(record[column]) for record in result.records(column))
    return list(dict.fromkeys(i for i in ids if i))


def _name_counts(result: QueryResult, name_column: str, fallback: str) -> list[NameCount]:
    return [
        NameCount(name=as_str(record[name_column]) or fallback, count=as_int(record["count"]))
        for record in result.records(name_column, "count")
    ]


class PlaybackAnalytics:
    """Builds the year-in-review views for one Jellyfin user.

    An instance belongs to a single request. ``orphaned_items`` collects the
    ids of episodes that could not be placed under a show during the last
    aggregation, so callers can see what a lower total left out.
    """

    def __init__(
        self,
        playback: PlaybackReportingClient,
        items: JellyfinClient,
        user_id: str,
    ):
        self.playback = playback
        self.items = items
        self.queries = PlaybackQueries(user_id)
        self.orphaned_items: set[str] = set()

    @classmethod
    def for_credentials(cls, credentials: JellyfinCredentials) -> "PlaybackAnalytics":
        return cls(
            playback=PlaybackReportingClient(credentials.server_url, credentials.api_key),
            items=JellyfinClient(
                credentials.server_url, credentials.user_id, credentials.user_token
            ),
            user_id=credentials.user_id,
        )

    async def _tree(self, episode_ids: Iterable[str]) -> ContentTree:
        return await ContentTree.build(self.items, episode_ids)

    def _note_orphans(self, tree: ContentTree, view: str) -> None:
        if tree.orphaned:
            logger.info(f"{view}: {len(tree.orphaned)} episode(s) without a resolvable show")
            ORPHANED_ITEMS.inc(len(tree.orphaned))
        self.orphaned_items |= tree.orphaned

    async def list_movies(self, timeframe: Timeframe) -> list[MovieWithStats]:
        data = await self.playback.query(self.queries.grouped_movies(timeframe))

        stats: dict[str, tuple[int, int]] = {}
        for record in data.records("ItemId", "PlayCount", "TotalWatchTime"):
            item_id = as_str(record["ItemId"])
            if item_id:
                stats[item_id] = (as_int(record["PlayCount"]), as_int(record["TotalWatchTime"]))

        movies = []
        for movie in await self.items.get_items(list(stats)):
            play_count, watch_time = stats.get(movie.id, (0, 0))
            movies.append(
                MovieWithStats(
                    **movie.model_dump(),
                    play_count=play_count,
                    completed_watches=completed_watches(
                        watch_time, movie.duration_seconds, play_count
                    ),
                    total_watch_time_seconds=watch_time,
                )
            )

        movies.sort(key=lambda m: (m.completed_watches, m.duration_seconds), reverse=True)
        return movies

    async def list_shows(self, timeframe: Timeframe) -> list[ShowWithStats]:
        data = await self.playback.query(self.queries.item_rows(ItemType.EPISODE, timeframe))
        plays = [
            (as_str(record["ItemId"]), as_int(record["PlayDuration"]))
            for record in data.records("ItemId", "PlayDuration")
        ]
        plays = [(item_id, duration) for item_id, duration in plays if item_id]

        tree = await self._tree(item_id for item_id, _ in plays)
        grouped = tree.episodes_by_show()
        self._note_orphans(tree, "shows")

        shows = []
        for show_id, episodes in grouped.items():
            runtimes = {ep.id: ep.duration_seconds for ep in episodes}
            watched = set()
            playback_time = 0
            for item_id, duration in plays:
                if item_id in runtimes:
                    watched.add(item_id)
                    playback_time += clamp_play_duration(duration, runtimes[item_id])
            show = tree.nodes[show_id]
            shows.append(
                ShowWithStats(
                    show_name=show.name or "",
                    episode_count=len(watched),
                    playback_time=playback_time,
                    item=show,
                )
            )

        shows.sort(key=lambda s: s.episode_count, reverse=True)
        return shows

    async def _distinct_items(self, item_type: ItemType, timeframe: Timeframe) -> list[ContentItem]:
        data = await self.playback.query(self.queries.item_rows(item_type, timeframe))
        return await self.items.get_items(_unique_ids(data))

    async def list_audio(self, timeframe: Timeframe) -> list[ContentItem]:
        return await self._distinct_items(ItemType.AUDIO, timeframe)

    async def list_music_videos(self, timeframe: Timeframe) -> list[ContentItem]:
        return await self._distinct_items(ItemType.MUSIC_VIDEO, timeframe)

    async def list_live_tv_channels(self, timeframe: Timeframe) -> list[LiveTvChannel]:
        data = await self.playback.query(self.queries.item_rows(ItemType.TV_CHANNEL, timeframe))
        durations: dict[str, int] = {}
        for record in data.records("ItemName", "PlayDuration"):
            name = as_str(record["ItemName"])
            durations[name] = durations.get(name, 0) + as_int(record["PlayDuration"])
        channels = [LiveTvChannel(channel_name=n, duration=d) for n, d in durations.items()]
        channels.sort(key=lambda c: c.duration, reverse=True)
        return channels

    async def get_device_stats(self, timeframe: Timeframe) -> DeviceStats:
        devices = _name_counts(
            await self.playback.query(self.queries.device_counts(timeframe)),
            "device",
            "Unknown Device",
        )
        clients = _name_counts(
            await self.playback.query(self.queries.client_counts(timeframe)),
            "client",
            "Unknown Client",
        )

        os_counts: dict[str, int] = {}
        for device in devices:
            bucket = classify_os(device.name)
            os_counts[bucket] = os_counts.get(bucket, 0) + device.count
        os_usage = [NameCount(name=name, count=count) for name, count in os_counts.items()]
        os_usage.sort(key=lambda o: o.count, reverse=True)

        return DeviceStats(device_usage=devices, client_usage=clients, os_usage=os_usage)

    async def get_punch_card(self, timeframe: Timeframe) -> list[PunchCardCell]:
        data = await self.playback.query(self.queries.punch_card(timeframe))
        return [
            PunchCardCell(
                day_of_week=as_int(record["day_of_week"]),
                hour=as_int(record["hour"]),
                count=as_int(record["count"]),
            )
            for record in data.records("day_of_week", "hour", "count")
        ]

    async def get_calendar(self) -> list[CalendarDay]:
        data = await self.playback.query(self.queries.calendar())
        return [
            CalendarDay(day=as_str(record["day"]), value=as_int(record["count"]))
            for record in data.records("day", "count")
        ]

    async def get_monthly_shows(self, timeframe: Timeframe) -> list[MonthlyShowStats]:
        data = await self.playback.query(self.queries.monthly_episodes(timeframe))
        rows = [
            (as_str(r["Month"]), as_str(r["ItemId"]), as_float(r["TotalPlayDuration"]))
            for r in data.records("Month", "ItemId", "TotalPlayDuration")
        ]

        tree = await self._tree(item_id for _, item_id, _ in rows)
        # Episodes without a show are left out of the month total as well.
        monthly: dict[str, dict[str, float]] = {}
        shows: dict[str, ContentItem] = {}
        for month, item_id, duration in rows:
            show = tree.top_level_of(item_id) if item_id else None
            if show is None:
                continue
            shows[show.id] = show
            per_show = monthly.setdefault(month, {})
            per_show[show.id] = per_show.get(show.id, 0.0) + duration
        self._note_orphans(tree, "monthly shows")

        result = []
        for month, per_show in monthly.items():
            month_dt = month_start(month)
            if month_dt is None:
                logger.warning(f"Skipping unparsable month bucket: {month!r}")
                continue
            top_id = max(per_show, key=per_show.get)
            result.append(
                MonthlyShowStats(
                    month=month_dt,
                    top_show=TopShow(
                        item=shows[top_id], watch_time_minutes=per_show[top_id] / 60
                    ),
                    total_watch_time_minutes=sum(per_show.values()) / 60,
                )
            )

        result.sort(key=lambda m: m.month, reverse=True)
        return result

    async def get_unfinished_shows(self, timeframe: Timeframe) -> list[UnfinishedShow]:
        data = await self.playback.query(self.queries.last_watched_episodes(timeframe))
        last_watched: dict[str, datetime] = {}
        for record in data.records("ItemId", "LastWatched"):
            item_id = as_str(record["ItemId"])
            watched_at = parse_activity_date(as_str(record["LastWatched"]))
            if item_id and watched_at is not None:
                previous = last_watched.get(item_id)
                last_watched[item_id] = max(previous, watched_at) if previous else watched_at

        tree = await self._tree(last_watched)
        candidates: dict[str, ContentItem] = {}
        for episode_id in tree.episode_ids:
            show = tree.series_of(episode_id)
            if show is not None:
                candidates.setdefault(show.id, show)
        self._note_orphans(tree, "unfinished shows")

        unfinished = []
        for show in candidates.values():
            try:
                stats = await self.items.get_show_episode_stats(show.id)
            except httpx.HTTPError as e:
                logger.error(f"Error processing show {show.name}: {e}")
                continue
            if not 0 < stats.watched < stats.total:
                continue

            dates = [
                watched_at
                for episode_id, watched_at in last_watched.items()
                if tree.belongs_to(episode_id, show.id)
            ]
            unfinished.append(
                UnfinishedShow(
                    item=show,
                    watched_episodes=stats.watched,
                    total_episodes=stats.total,
                    last_watched_date=max(dates, default=EPOCH),
                )
            )

        unfinished.sort(key=lambda u: u.last_watched_date, reverse=True)
        return unfinished

    async def list_favorite_actors(self, timeframe: Timeframe) -> list[ActorStats]:
        movies = await self.list_movies(timeframe)
        shows = await self.list_shows(timeframe)
        show_items = [show.item for show in shows]

        first_seen: dict[str, Person] = {}
        for item in [*show_items, *movies]:
            for person in item.people:
                if person.name and person.name not in first_seen:
                    first_seen[person.name] = person

        actors = []
        for name, details in first_seen.items():
            seen_in_movies = [m for m in movies if m.has_person(name)]
            seen_in_shows = [s for s in show_items if s.has_person(name)]
            count = len(seen_in_movies) + len(seen_in_shows)
            if count <= 1:
                continue
            actors.append(
                ActorStats(
                    name=name,
                    count=count,
                    movie_count=len(seen_in_movies),
                    show_count=len(seen_in_shows),
                    details=details,
                    seen_in_movies=seen_in_movies,
                    seen_in_shows=seen_in_shows,
                )
            )

        actors.sort(key=lambda a: (-a.count, a.name.casefold(), a.name))
        return actors

    async def get_watched_on_date(self, day: date) -> list[ContentItem]:
        movie_data = await self.playback.query(self.queries.item_rows_on(ItemType.MOVIE, day))
        movies = await self.items.get_items(_unique_ids(movie_data))

        episode_data = await self.playback.query(self.queries.item_rows_on(ItemType.EPISODE, day))
        tree = await self._tree(_unique_ids(episode_data))
        shows = [tree.show_of(episode_id) for episode_id in tree.episode_ids]
        self._note_orphans(tree, "watched on date")

        unique: dict[str, ContentItem] = {}
        for item in [*movies, *shows]:
            if item is not None and item.id not in unique:
                unique[item.id] = item
        return list(unique.values())
