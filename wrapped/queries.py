"""
Query text for the Playback Reporting custom-query endpoint.

The endpoint only accepts raw SQL, so values are interpolated. Everything that
reaches the text goes through PlaybackQueries: dates arrive as ``date`` objects,
item types as ``ItemType`` members, and the user id is pattern-checked once.
"""

import re
from datetime import date, timedelta
from enum import Enum

from .models import Timeframe

USER_ID_PATTERN = re.compile(r"^[0-9A-Za-z-]{1,64}$")


class ItemType(str, Enum):
    MOVIE = "Movie"
    EPISODE = "Episode"
    AUDIO = "Audio"
    MUSIC_VIDEO = "MusicVideo"
    TV_CHANNEL = "TvChannel"


def _sql_date(value: date) -> str:
    if not isinstance(value, date):
        raise TypeError(f"Expected a date, got {type(value).__name__}")
    return value.isoformat()


class PlaybackQueries:
    def __init__(self, user_id: str):
        if not isinstance(user_id, str) or not USER_ID_PATTERN.match(user_id):
            raise ValueError("Invalid user id")
        self.user_id = user_id

    def _where(self, timeframe: Timeframe) -> str:
        if not isinstance(timeframe, Timeframe):
            raise TypeError(f"Expected a Timeframe, got {type(timeframe).__name__}")
        return (
            f'WHERE UserId = "{self.user_id}"\n'
            f"    AND DateCreated > '{_sql_date(timeframe.start_date)}'\n"
            f"    AND DateCreated <= '{_sql_date(timeframe.end_date)}'"
        )

    def _where_day(self, day: date) -> str:
        next_day = day + timedelta(days=1)
        return (
            f'WHERE UserId = "{self.user_id}"\n'
            f"    AND DateCreated >= '{_sql_date(day)}'\n"
            f"    AND DateCreated < '{_sql_date(next_day)}'"
        )

    @staticmethod
    def _type_clause(item_type: ItemType) -> str:
        return f'AND ItemType = "{ItemType(item_type).value}"'

    def grouped_movies(self, timeframe: Timeframe) -> str:
        """Per-movie play count and summed watch time."""
        return f"""
            SELECT ItemId, COUNT(*) as PlayCount, SUM(PlayDuration) as TotalWatchTime
            FROM PlaybackActivity
            {self._where(timeframe)}
            {self._type_clause(ItemType.MOVIE)}
            GROUP BY ItemId
            ORDER BY TotalWatchTime DESC
        """

    def item_rows(self, item_type: ItemType, timeframe: Timeframe) -> str:
        """One row per play session of the given item type."""
        return f"""
            SELECT ROWID, *
            FROM PlaybackActivity
            {self._where(timeframe)}
            {self._type_clause(item_type)}
            ORDER BY rowid DESC
        """

    def item_rows_on(self, item_type: ItemType, day: date) -> str:
        return f"""
            SELECT ROWID, *
            FROM PlaybackActivity
            {self._where_day(day)}
            {self._type_clause(item_type)}
            ORDER BY rowid DESC
        """

    def device_counts(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT DeviceName as device, COUNT(*) as count
            FROM PlaybackActivity
            {self._where(timeframe)}
            AND DeviceName IS NOT NULL AND DeviceName != ''
            GROUP BY DeviceName
            ORDER BY count DESC
        """

    def client_counts(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT ClientName as client, COUNT(*) as count
            FROM PlaybackActivity
            {self._where(timeframe)}
            AND ClientName IS NOT NULL AND ClientName != ''
            GROUP BY ClientName
            ORDER BY count DESC
        """

    def punch_card(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT
                strftime('%w', DateCreated) as day_of_week,
                strftime('%H', DateCreated) as hour,
                COUNT(*) as count
            FROM PlaybackActivity
            {self._where(timeframe)}
            GROUP BY day_of_week, hour
            ORDER BY day_of_week, hour
        """

    def calendar(self) -> str:
        """Per-day play counts over the trailing year."""
        return f"""
            SELECT date(DateCreated) as day, COUNT(*) as count
            FROM PlaybackActivity
            WHERE UserId = "{self.user_id}"
            AND DateCreated > date('now', '-1 year')
            GROUP BY date(DateCreated)
            ORDER BY day
        """

    def monthly_episodes(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT
                strftime('%Y-%m', DateCreated) as Month,
                ItemId,
                SUM(PlayDuration) as TotalPlayDuration
            FROM PlaybackActivity
            {self._where(timeframe)}
            {self._type_clause(ItemType.EPISODE)}
            GROUP BY Month, ItemId
            ORDER BY Month DESC, TotalPlayDuration DESC
        """

    def last_watched_episodes(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT ItemId, ItemName, MAX(DateCreated) as LastWatched
            FROM PlaybackActivity
            {self._where(timeframe)}
            {self._type_clause(ItemType.EPISODE)}
            GROUP BY ItemId
        """

    def daily_counts(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT date(DateCreated) as day, COUNT(*) as count
            FROM PlaybackActivity
            {self._where(timeframe)}
            GROUP BY date(DateCreated)
            ORDER BY day
        """

    def hourly_counts(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT strftime('%H', DateCreated) as hour, COUNT(*) as count
            FROM PlaybackActivity
            {self._where(timeframe)}
            GROUP BY hour
        """

    def monthly_totals(self, timeframe: Timeframe) -> str:
        return f"""
            SELECT strftime('%Y-%m', DateCreated) as month, SUM(PlayDuration) as totalDuration
            FROM PlaybackActivity
            {self._where(timeframe)}
            GROUP BY month
            ORDER BY month
        """

    def monthly_items(self, timeframe: Timeframe) -> str:
        """Month and item id of every movie or episode play."""
        return f"""
            SELECT strftime('%Y-%m', DateCreated) as month, ItemId, ItemType
            FROM PlaybackActivity
            {self._where(timeframe)}
            AND (ItemType = "{ItemType.MOVIE.value}" OR ItemType = "{ItemType.EPISODE.value}")
            ORDER BY month
        """
