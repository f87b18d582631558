import logging
from typing import Iterable, Optional

from .jellyfin_client import JellyfinClient
from .models import ContentItem

logger = logging.getLogger(__name__)

SEASON_MARKER = "Season"


def _unique(ids: Iterable[Optional[str]]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


class ContentTree:
    """Episode -> season -> show index for the items seen in one request.

    Walks that cannot be completed record the episode id in ``orphaned``
    instead of failing.
    """

    def __init__(self, items: Iterable[ContentItem] = ()):
        self.nodes: dict[str, ContentItem] = {}
        self.episode_ids: list[str] = []
        self.orphaned: set[str] = set()
        self.add(items)

    @classmethod
    async def build(cls, resolver: JellyfinClient, episode_ids: Iterable[str]) -> "ContentTree":
        """Resolve episodes, then their parents, then their grandparents."""
        tree = cls()
        requested = _unique(episode_ids)
        episodes = await resolver.get_items(requested)
        tree.add(episodes)
        tree.episode_ids = [ep.id for ep in episodes if ep.id]
        tree.orphaned.update(set(requested) - set(tree.episode_ids))

        parents = await resolver.get_items(
            _unique(ep.parent_id for ep in episodes if ep.parent_id not in tree.nodes)
        )
        tree.add(parents)

        grandparents = await resolver.get_items(
            _unique(p.parent_id for p in parents if p.parent_id not in tree.nodes)
        )
        tree.add(grandparents)
        return tree

    def add(self, items: Iterable[ContentItem]) -> None:
        for item in items:
            if item.id:
                self.nodes[item.id] = item

    def get(self, item_id: Optional[str]) -> Optional[ContentItem]:
        if not item_id:
            return None
        return self.nodes.get(item_id)

    def parent(self, item_id: str) -> Optional[ContentItem]:
        item = self.get(item_id)
        return self.get(item.parent_id) if item else None

    def _orphan(self, episode_id: str) -> None:
        if episode_id not in self.orphaned:
            logger.debug(f"Could not place episode {episode_id} under a show")
        self.orphaned.add(episode_id)

    def show_of(self, episode_id: str) -> Optional[ContentItem]:
        """Strict walk: the episode's season's parent is the show."""
        season = self.parent(episode_id)
        show = self.get(season.parent_id) if season else None
        if show is None:
            self._orphan(episode_id)
        return show

    def top_level_of(self, episode_id: str) -> Optional[ContentItem]:
        """Lenient walk: the grandparent if it resolves, else the parent."""
        parent = self.parent(episode_id)
        if parent is None:
            self._orphan(episode_id)
            return None
        if parent.parent_id:
            return self.get(parent.parent_id) or parent
        return parent

    def series_of(self, episode_id: str) -> Optional[ContentItem]:
        """Name-based walk: a parent named like a season defers to its own parent."""
        parent = self.parent(episode_id)
        if parent is not None and parent.name and SEASON_MARKER in parent.name:
            show = self.get(parent.parent_id)
        else:
            show = parent
        if show is None:
            self._orphan(episode_id)
        return show

    def belongs_to(self, episode_id: str, show_id: str) -> bool:
        """True if the show is the episode's parent or grandparent."""
        episode = self.get(episode_id)
        if episode is None:
            return False
        if episode.parent_id == show_id:
            return True
        parent = self.get(episode.parent_id)
        return parent is not None and parent.parent_id == show_id

    def episodes_by_show(self) -> dict[str, list[ContentItem]]:
        """Group resolved episodes under their show using the strict walk."""
        grouped: dict[str, list[ContentItem]] = {}
        for episode_id in self.episode_ids:
            show = self.show_of(episode_id)
            if show is not None:
                grouped.setdefault(show.id, []).append(self.nodes[episode_id])
        return grouped
