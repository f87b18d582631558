import logging
import time
from typing import Any, Iterator, Optional

import httpx
from pydantic import BaseModel, Field

from .config import settings

logger = logging.getLogger(__name__)


class PlaybackQueryError(RuntimeError):
    """The Playback Reporting endpoint answered with a non-success status."""

    def __init__(self, status_code: int):
        super().__init__(f"Playback query failed: {status_code}")
        self.status_code = status_code


class QueryResult(BaseModel):
    """Columnar result of a custom query.

    Column order is not stable across query shapes, so cells are always looked
    up by column name.
    """

    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    def column_index(self, name: str) -> Optional[int]:
        try:
            return self.columns.index(name)
        except ValueError:
            return None

    def records(self, *names: str) -> Iterator[dict[str, Any]]:
        """Yield each row as a dict restricted to the requested columns."""
        indexes = {name: self.column_index(name) for name in names}
        for row in self.rows:
            yield {
                name: (row[idx] if idx is not None and idx < len(row) else None)
                for name, idx in indexes.items()
            }


def as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default


def as_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class PlaybackReportingClient:
    """Runs custom queries through the Jellyfin Playback Reporting plugin."""

    def __init__(
        self,
        server_url: str,
        api_key: str,
        timeout: float = settings.query_timeout_seconds,
    ):
        self.base_url = server_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def query(self, query: str) -> QueryResult:
        """Submit one query and return its columnar result."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/user_usage_stats/submit_custom_query",
                params={"stamp": int(time.time() * 1000)},
                headers={"X-Emby-Token": self.api_key},
                json={"CustomQueryString": query, "ReplaceUserId": True},
            )

        if not 200 <= response.status_code < 300:
            logger.error(f"Playback Reporting query failed: {response.status_code}")
            raise PlaybackQueryError(response.status_code)

        if not response.text:
            return QueryResult()

        data = response.json() or {}
        return QueryResult(
            columns=data.get("colums") or data.get("columns") or [],
            rows=data.get("results") or [],
        )
