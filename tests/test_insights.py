from datetime import date, datetime, timezone

import pytest

from wrapped import insights
from wrapped.analytics import PlaybackAnalytics
from wrapped.models import ContentItem, Timeframe
from wrapped.playback_reporting import QueryResult

TIMEFRAME = Timeframe(start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))


class _FakePlayback:
    def __init__(self, responses):
        self.responses = responses

    async def query(self, query: str) -> QueryResult:
        for markers, result in self.responses:
            if all(marker in query for marker in markers):
                return result
        return QueryResult()


class _FakeItems:
    def __init__(self, catalog=()):
        self.catalog = {item.id: item for item in catalog}

    async def get_items(self, ids):
        return [self.catalog[i] for i in ids if i in self.catalog]


def _analytics(responses, catalog=()) -> PlaybackAnalytics:
    return PlaybackAnalytics(
        playback=_FakePlayback(responses), items=_FakeItems(catalog), user_id="user1"
    )


def _movie_rows(*rows) -> QueryResult:
    return QueryResult(columns=["ItemId", "PlayCount", "TotalWatchTime"], rows=list(rows))


@pytest.mark.asyncio
async def test_streaks_longest_run_gap_and_current():
    days = QueryResult(
        columns=["day", "count"],
        rows=[
            ["2024-01-01", "2"],
            ["2024-01-02", "1"],
            ["2024-01-03", "4"],
            ["2024-01-10", "1"],
            ["2024-01-11", "3"],
            ["2024-01-12", "0"],
        ],
    )
    analytics = _analytics([(("as day",), days)])

    streaks = await insights.get_streaks(analytics, TIMEFRAME, today=date(2024, 1, 11))

    assert streaks.longest_streak == 3
    assert streaks.longest_break == 6
    assert streaks.current_streak == 2
    assert streaks.streak_start_date == date(2024, 1, 10)


@pytest.mark.asyncio
async def test_streaks_without_activity():
    streaks = await insights.get_streaks(_analytics([]), TIMEFRAME, today=date(2024, 6, 1))

    assert (streaks.longest_streak, streaks.longest_break, streaks.current_streak) == (0, 0, 0)
    assert streaks.streak_start_date is None


@pytest.mark.asyncio
async def test_time_personality_peak_bucket():
    hours = QueryResult(columns=["hour", "count"], rows=[["08", "1"], ["20", "3"]])

    result = await insights.get_time_personality(_analytics([(("as hour",), hours)]), TIMEFRAME)

    assert result.personality == "Prime Timer"
    assert result.peak_time == "5pm-10pm"
    assert result.breakdown.early_bird == 25
    assert result.breakdown.prime_timer == 75


@pytest.mark.asyncio
async def test_time_personality_tie_goes_to_earliest_bucket():
    hours = QueryResult(columns=["hour", "count"], rows=[["23", "2"], ["07", "2"]])

    result = await insights.get_time_personality(_analytics([(("as hour",), hours)]), TIMEFRAME)

    assert result.personality == "Early Bird"


@pytest.mark.asyncio
async def test_decade_breakdown_percentages_over_all_items():
    catalog = [
        ContentItem(id="m1", duration_seconds=100, production_year=1995),
        ContentItem(id="m2", duration_seconds=100, production_year=2015),
        ContentItem(id="m3", duration_seconds=100, production_year=2018),
        ContentItem(id="m4", duration_seconds=100),
    ]
    rows = _movie_rows(["m1", "1", "100"], ["m2", "1", "100"], ["m3", "1", "100"], ["m4", "1", "100"])
    analytics = _analytics([(("PlayCount",), rows)], catalog)

    result = await insights.get_decade_breakdown(analytics, TIMEFRAME)

    percentages = {p.period: p.percentage for p in result.period_breakdown}
    assert percentages["Pre-2000"] == 25
    assert percentages["2010–2020"] == 50
    assert result.top_period == "2010–2020"
    assert result.personality == "Zero Adventurousness"
    assert result.average_year == 2009


@pytest.mark.asyncio
async def test_watch_evolution_maps_episode_genres_through_show():
    catalog = [
        ContentItem(id="m1", genres=["Drama"]),
        ContentItem(id="e1", parent_id="s1"),
        ContentItem(id="e2", parent_id="s1"),
        ContentItem(id="s1", parent_id="S", name="Season 1"),
        ContentItem(id="S", name="Show", genres=["Comedy", "Drama"]),
    ]
    totals = QueryResult(columns=["month", "totalDuration"], rows=[["2024-01", "3630"]])
    plays = QueryResult(
        columns=["month", "ItemId", "ItemType"],
        rows=[
            ["2024-01", "m1", "Movie"],
            ["2024-01", "e1", "Episode"],
            ["2024-01", "e2", "Episode"],
        ],
    )
    analytics = _analytics(
        [(("totalDuration",), totals), (("ItemId, ItemType",), plays)], catalog
    )

    result = await insights.get_watch_evolution(analytics, TIMEFRAME)

    january = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    assert len(result.monthly_data) == 1
    assert result.monthly_data[0].month == january
    assert result.monthly_data[0].watch_time_minutes == 61
    assert result.monthly_data[0].top_genre == "Drama"
    assert [(g.genre, g.count) for g in result.genre_evolution[0].genres] == [
        ("Drama", 3),
        ("Comedy", 2),
    ]


@pytest.mark.asyncio
async def test_viewing_personality_movie_buff():
    catalog = [
        ContentItem(id="m1", duration_seconds=100, production_year=1995, genres=["Drama"]),
        ContentItem(id="m2", duration_seconds=100, genres=["Drama"]),
    ]
    rows = _movie_rows(["m1", "1", "100"], ["m2", "1", "100"])
    analytics = _analytics([(("PlayCount",), rows)], catalog)

    result = await insights.get_viewing_personality(analytics, TIMEFRAME, today=date(2024, 6, 1))

    assert result.personality == "Movie Buff"
    assert result.traits == [
        "Movie Enthusiast",
        "Quality over Quantity",
        "Genre Loyalist",
        "Classic Lover",
    ]


@pytest.mark.asyncio
async def test_fun_comparisons_for_forty_hours():
    catalog = [ContentItem(id="m1", duration_seconds=7200)]
    analytics = _analytics([(("PlayCount",), _movie_rows(["m1", "20", "144000"]))], catalog)

    result = await insights.get_fun_comparisons(analytics, TIMEFRAME)

    assert [(c.value, c.unit) for c in result.comparisons] == [
        (1, "full work week"),
        (1, "complete TV series"),
        (2, "full days"),
        (4, "times the entire Lord of the Rings trilogy"),
    ]


@pytest.mark.asyncio
async def test_fun_comparisons_empty_without_watch_time():
    result = await insights.get_fun_comparisons(_analytics([]), TIMEFRAME)

    assert result.comparisons == []


@pytest.mark.asyncio
async def test_decade_breakdown_recent_content_verdict():
    catalog = [ContentItem(id="m1", duration_seconds=100, production_year=2023)]
    analytics = _analytics([(("PlayCount",), _movie_rows(["m1", "1", "100"]))], catalog)

    result = await insights.get_decade_breakdown(analytics, TIMEFRAME)

    assert result.top_period == "2020–Now"
    assert result.personality == "Recency Bias"
    assert "object permanence of a goldfish" in result.message
