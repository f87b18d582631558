"""
Derived "personality" views layered on top of PlaybackAnalytics.
"""

from datetime import date, timedelta
from typing import Optional

from .analytics import PlaybackAnalytics, month_start
from .content_tree import ContentTree
from .models import (
    Comparison,
    ContentItem,
    DecadeBreakdown,
    FunComparisons,
    GenreCount,
    MonthlyGenres,
    MonthlyWatchTime,
    PeriodCount,
    StreakStats,
    TimeBreakdown,
    TimePersonality,
    Timeframe,
    ViewingPersonality,
    WatchEvolution,
)
from .playback_reporting import as_int, as_str

DECADE_VERDICTS = {
    "Pre-2000": (
        "Classic Lover",
        "Living in the past. You probably complain that 'they don't make 'em like this "
        "anymore' (spoiler: they do).",
    ),
    "2000–2010": (
        "Questionable Taste",
        "You have questionable taste. This was the decade that decided Shrek was a "
        "masterpiece. (Okay, fair point).",
    ),
    "2010–2020": (
        "Zero Adventurousness",
        "Zero adventurousness detected. You watched the same stuff everyone else watched "
        "5 years ago.",
    ),
    "2020–Now": (
        "Recency Bias",
        "Recency Bias: The Diagnosis. You have the object permanence of a goldfish. "
        "If it's not new, it doesn't exist.",
    ),
}


def _percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(part * 100 / total + 0.5)


def _plural(value: int, singular: str, plural: str) -> str:
    return singular if value == 1 else plural


def _parse_day(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


async def _watched_days(analytics: PlaybackAnalytics, timeframe: Timeframe) -> list[date]:
    data = await analytics.playback.query(analytics.queries.daily_counts(timeframe))
    days = set()
    for record in data.records("day", "count"):
        day = _parse_day(as_str(record["day"]))
        if day is not None and as_int(record["count"]) > 0:
            days.add(day)
    return sorted(days)


async def get_streaks(
    analytics: PlaybackAnalytics, timeframe: Timeframe, today: Optional[date] = None
) -> StreakStats:
    """Longest run of consecutive viewing days, longest gap, and the run ending today.

    ``streak_start_date`` is the first day of the current run, not today.
    """
    days = await _watched_days(analytics, timeframe)
    if not days:
        return StreakStats(longest_streak=0, longest_break=0, current_streak=0)

    watched = set(days)
    current = 0
    check = today or date.today()
    while check in watched:
        current += 1
        check -= timedelta(days=1)
    streak_start = check + timedelta(days=1) if current else None

    longest_streak = 1
    longest_break = 0
    run = 1
    for previous, day in zip(days, days[1:]):
        gap = (day - previous).days
        if gap == 1:
            run += 1
            longest_streak = max(longest_streak, run)
        else:
            run = 1
            longest_break = max(longest_break, gap - 1)

    return StreakStats(
        longest_streak=longest_streak,
        longest_break=longest_break,
        current_streak=current,
        streak_start_date=streak_start,
    )


async def get_time_personality(
    analytics: PlaybackAnalytics, timeframe: Timeframe
) -> TimePersonality:
    data = await analytics.playback.query(analytics.queries.hourly_counts(timeframe))
    buckets = {"early_bird": 0, "day_watcher": 0, "prime_timer": 0, "night_owl": 0}
    total = 0
    for record in data.records("hour", "count"):
        hour = as_int(record["hour"])
        count = as_int(record["count"])
        total += count
        if hour < 9:
            buckets["early_bird"] += count
        elif hour < 17:
            buckets["day_watcher"] += count
        elif hour < 22:
            buckets["prime_timer"] += count
        else:
            buckets["night_owl"] += count

    breakdown = TimeBreakdown(**{key: _percent(value, total) for key, value in buckets.items()})
    labels = [
        (breakdown.early_bird, "Early Bird", "Before 9am"),
        (breakdown.day_watcher, "Day Watcher", "9am-5pm"),
        (breakdown.prime_timer, "Prime Timer", "5pm-10pm"),
        (breakdown.night_owl, "Night Owl", "After 10pm"),
    ]
    peak = max(value for value, _, _ in labels)
    _, personality, peak_time = next(label for label in labels if label[0] == peak)
    return TimePersonality(personality=personality, breakdown=breakdown, peak_time=peak_time)


def _period_of(year: int) -> str:
    if year < 2000:
        return "Pre-2000"
    if year < 2010:
        return "2000–2010"
    if year < 2020:
        return "2010–2020"
    return "2020–Now"


async def get_decade_breakdown(
    analytics: PlaybackAnalytics, timeframe: Timeframe
) -> DecadeBreakdown:
    movies = await analytics.list_movies(timeframe)
    shows = await analytics.list_shows(timeframe)
    items: list[ContentItem] = [*movies, *(show.item for show in shows)]

    counts = {period: 0 for period in DECADE_VERDICTS}
    years = [item.production_year for item in items if item.production_year]
    for year in years:
        counts[_period_of(year)] += 1

    breakdown = [
        PeriodCount(period=period, count=count, percentage=_percent(count, len(items)))
        for period, count in counts.items()
    ]
    top_period = max(breakdown, key=lambda p: p.count).period
    personality, message = DECADE_VERDICTS[top_period]
    return DecadeBreakdown(
        period_breakdown=breakdown,
        average_year=int(sum(years) / len(years) + 0.5) if years else 0,
        top_period=top_period,
        personality=personality,
        message=message,
    )


async def get_watch_evolution(
    analytics: PlaybackAnalytics, timeframe: Timeframe
) -> WatchEvolution:
    """Monthly watch time plus the genres that dominated each month."""
    totals = await analytics.playback.query(analytics.queries.monthly_totals(timeframe))
    plays = await analytics.playback.query(analytics.queries.monthly_items(timeframe))
    records = list(plays.records("month", "ItemId", "ItemType"))

    movie_ids = [as_str(r["ItemId"]) for r in records if as_str(r["ItemType"]) == "Movie"]
    episode_ids = [as_str(r["ItemId"]) for r in records if as_str(r["ItemType"]) == "Episode"]

    movies = await analytics.items.get_items(list(dict.fromkeys(i for i in movie_ids if i)))
    genres_by_item: dict[str, list[str]] = {movie.id: movie.genres for movie in movies}
    tree = await ContentTree.build(analytics.items, episode_ids)
    for episode_id in tree.episode_ids:
        show = tree.show_of(episode_id)
        if show is not None:
            genres_by_item[episode_id] = show.genres

    genres_by_month: dict[str, dict[str, int]] = {}
    for record in records:
        genres = genres_by_item.get(as_str(record["ItemId"]))
        if not genres:
            continue
        month_genres = genres_by_month.setdefault(as_str(record["month"]), {})
        for genre in genres:
            month_genres[genre] = month_genres.get(genre, 0) + 1

    monthly_data = []
    for record in totals.records("month", "totalDuration"):
        month = as_str(record["month"])
        month_dt = month_start(month)
        if month_dt is None:
            continue
        month_genres = genres_by_month.get(month) or {}
        monthly_data.append(
            MonthlyWatchTime(
                month=month_dt,
                watch_time_minutes=int(as_int(record["totalDuration"]) / 60 + 0.5),
                top_genre=max(month_genres, key=month_genres.get) if month_genres else None,
            )
        )

    genre_evolution = []
    for month, month_genres in genres_by_month.items():
        month_dt = month_start(month)
        if month_dt is None:
            continue
        ranked = sorted(month_genres.items(), key=lambda g: g[1], reverse=True)[:5]
        genre_evolution.append(
            MonthlyGenres(
                month=month_dt,
                genres=[GenreCount(genre=genre, count=count) for genre, count in ranked],
            )
        )

    return WatchEvolution(monthly_data=monthly_data, genre_evolution=genre_evolution)


def _longest_consecutive_run(days: list[date]) -> int:
    longest = 0
    run = 0
    for previous, day in zip(days, days[1:]):
        if (day - previous).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


async def get_viewing_personality(
    analytics: PlaybackAnalytics, timeframe: Timeframe, today: Optional[date] = None
) -> ViewingPersonality:
    movies = await analytics.list_movies(timeframe)
    shows = await analytics.list_shows(timeframe)
    calendar = await analytics.get_calendar()
    punch_card = await analytics.get_punch_card(timeframe)

    total_items = len(movies) + len(shows)
    movie_ratio = len(movies) / total_items if total_items else 0

    genres = {genre for movie in movies for genre in movie.genres}
    genres.update(genre for show in shows for genre in show.item.genres)

    days = sorted({d for d in (_parse_day(c.day) for c in calendar) if d is not None})
    binge_run = _longest_consecutive_run(days)

    total_plays = sum(cell.count for cell in punch_card)
    night_plays = sum(cell.count for cell in punch_card if cell.hour >= 22 or cell.hour < 6)
    night_ratio = night_plays / total_plays if total_plays else 0

    current_year = (today or date.today()).year
    years = [m.production_year for m in movies if m.production_year]
    years += [s.item.production_year for s in shows if s.item.production_year]
    content_age = current_year - (sum(years) / len(years) if years else current_year)

    personality = "Casual Viewer"
    description = "You enjoy a balanced mix of content."
    traits: list[str] = []
    if movie_ratio > 0.7:
        personality = "Movie Buff"
        description = "You prefer the cinematic experience of movies over episodic content."
        traits += ["Movie Enthusiast", "Quality over Quantity"]
    elif movie_ratio < 0.3:
        personality = "Binge Master"
        description = (
            "You love diving deep into TV series and can't get enough of episodic storytelling."
        )
        traits += ["Series Devotee", "Long-form Content Lover"]

    if len(genres) > 10:
        traits.append("Genre Explorer")
    elif len(genres) < 5:
        traits.append("Genre Loyalist")
    if binge_run > 7:
        traits.append("Binge Champion")
    if night_ratio > 0.4:
        traits.append("Night Owl")
    if content_age > 20:
        traits.append("Classic Lover")
    elif content_age < 5:
        traits.append("Trend Follower")
    if not traits:
        traits.append("Balanced Viewer")

    return ViewingPersonality(personality=personality, description=description, traits=traits)


async def get_fun_comparisons(
    analytics: PlaybackAnalytics, timeframe: Timeframe
) -> FunComparisons:
    """Express total watch time in everyday units."""
    movies = await analytics.list_movies(timeframe)
    shows = await analytics.list_shows(timeframe)

    total_minutes = (
        sum(m.total_watch_time_seconds for m in movies) + sum(s.playback_time for s in shows)
    ) / 60
    total_hours = total_minutes / 60
    total_days = total_hours / 24

    comparisons: list[Comparison] = []

    # 2 hour films, 100 seat theaters
    theaters = round(total_minutes / 120 / 100)
    if theaters > 0:
        comparisons.append(
            Comparison(
                label="You watched enough to fill",
                value=theaters,
                unit=_plural(theaters, "movie theater", "movie theaters"),
            )
        )

    work_weeks = round(total_hours / 40)
    if work_weeks > 0:
        comparisons.append(
            Comparison(
                label="That's",
                value=work_weeks,
                unit=_plural(work_weeks, "full work week", "full work weeks"),
            )
        )

    # 60 hours per complete series
    series = round(total_minutes / 3600)
    if series > 0:
        comparisons.append(
            Comparison(label="You could have watched", value=series, unit="complete TV series")
        )

    if total_days >= 1:
        days = round(total_days)
        comparisons.append(
            Comparison(
                label="You watched the equivalent of",
                value=days,
                unit=_plural(days, "full day", "full days"),
            )
        )

    # Extended edition trilogy, 11 hours
    trilogies = round(total_minutes / 660)
    if trilogies > 0:
        comparisons.append(
            Comparison(
                label="You could have watched",
                value=trilogies,
                unit=_plural(
                    trilogies,
                    "time the entire Lord of the Rings trilogy",
                    "times the entire Lord of the Rings trilogy",
                ),
            )
        )

    return FunComparisons(comparisons=comparisons)
