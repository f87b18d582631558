import logging
from typing import Sequence

import httpx
from prometheus_client import Counter

from .config import settings
from .models import AuthResult, ContentItem, EpisodeStats

logger = logging.getLogger(__name__)

ITEM_FIELDS = "ParentId,People,Genres"
AUTHORIZATION_HEADER = (
    'MediaBrowser Client="Jellyfin-Wrapped-Backend", Device="Server", '
    'DeviceId="jellyfin-wrapped-backend", Version="1.0.0"'
)

FAILED_BATCHES = Counter(
    "wrapped_item_batches_failed_total", "Item lookup batches dropped after an upstream failure"
)


class AuthenticationError(RuntimeError):
    """Jellyfin rejected the supplied username and password."""


class JellyfinClient:
    """Resolves catalog item ids to metadata on behalf of one Jellyfin user."""

    def __init__(
        self,
        server_url: str,
        user_id: str,
        user_token: str,
        batch_size: int = settings.item_batch_size,
        timeout: float = settings.request_timeout_seconds,
    ):
        self.base_url = server_url.rstrip("/")
        self.user_id = user_id
        self.user_token = user_token
        self.batch_size = batch_size
        self.timeout = timeout
        self.failed_batches = 0

    @property
    def _items_url(self) -> str:
        return f"{self.base_url}/Users/{self.user_id}/Items"

    @property
    def _headers(self) -> dict[str, str]:
        return {"X-Emby-Token": self.user_token}

    async def get_items(self, ids: Sequence[str]) -> list[ContentItem]:
        """Fetch items in batches; a failed batch is logged and left out."""
        if not ids:
            return []

        ids = list(ids)
        items: list[ContentItem] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(ids), self.batch_size):
                batch = ids[start : start + self.batch_size]
                try:
                    response = await client.get(
                        self._items_url,
                        params={"ids": ",".join(batch), "fields": ITEM_FIELDS},
                        headers=self._headers,
                    )
                except httpx.HTTPError as e:
                    self._record_failure(f"Failed to fetch items: {e}")
                    continue

                if response.status_code != 200:
                    self._record_failure(f"Failed to fetch items: {response.status_code}")
                    continue

                data = response.json() or {}
                items.extend(ContentItem.from_jellyfin(raw) for raw in data.get("Items") or [])
        return items

    def _record_failure(self, message: str) -> None:
        self.failed_batches += 1
        FAILED_BATCHES.inc()
        logger.error(message)

    async def get_show_episode_stats(self, show_id: str) -> EpisodeStats:
        """Count all episodes of a series and how many this user has played.

        Both counts cover the whole series, regardless of any timeframe.
        """
        params = {"parentId": show_id, "includeItemTypes": "Episode", "recursive": "true"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            all_response = await client.get(self._items_url, params=params, headers=self._headers)
            if all_response.status_code != 200:
                return EpisodeStats()
            total = (all_response.json() or {}).get("TotalRecordCount") or 0

            watched_response = await client.get(
                self._items_url,
                params={**params, "filters": "IsPlayed"},
                headers=self._headers,
            )
            if watched_response.status_code != 200:
                return EpisodeStats(total=total)
            watched = (watched_response.json() or {}).get("TotalRecordCount") or 0

        return EpisodeStats(total=total, watched=watched)


async def authenticate(server_url: str, username: str, password: str) -> AuthResult:
    """Log in to Jellyfin by name and return the user's access token."""
    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
        response = await client.post(
            f"{server_url.rstrip('/')}/Users/AuthenticateByName",
            headers={"X-Emby-Authorization": AUTHORIZATION_HEADER},
            json={"Username": username, "Pw": password},
        )

    if response.status_code != 200:
        logger.warning(f"Jellyfin auth failed for user {username}: {response.status_code}")
        raise AuthenticationError(f"Jellyfin rejected credentials: {response.status_code}")

    data = response.json()
    return AuthResult(
        user_id=data["User"]["Id"],
        username=data["User"]["Name"],
        access_token=data["AccessToken"],
    )
