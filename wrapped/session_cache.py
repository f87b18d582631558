import asyncio
import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional, Protocol

from .config import settings
from .models import SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def create(self, session_id: str, record: SessionRecord) -> None: ...

    def get(self, session_id: str) -> Optional[SessionRecord]: ...

    def delete(self, session_id: str) -> bool: ...

    def sweep(self) -> int: ...

    def __len__(self) -> int: ...

    async def run_sweeper(self, interval_seconds: float = 3600) -> None: ...


class SessionCache:
    """In-memory map of JWT id to upstream credentials with a fixed TTL.

    Entries expire lazily when read and in bulk via sweep(). Everything lives in
    process memory, so a restart logs every user out.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_seconds = ttl.total_seconds()
        self._clock = clock
        self._entries: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, record: SessionRecord, now: float) -> bool:
        return now - record.created_at > self._ttl_seconds

    def create(self, session_id: str, record: SessionRecord) -> None:
        """Store a record stamped with the current time, replacing any existing one."""
        stamped = record.model_copy(update={"created_at": self._clock()})
        with self._lock:
            self._entries[session_id] = stamped

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._entries.get(session_id)
            if record is None:
                return None
            if self._expired(record, self._clock()):
                self._entries.pop(session_id, None)
                return None
            return record

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def sweep(self) -> int:
        """Evict every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, rec in self._entries.items() if self._expired(rec, now)]
            for sid in expired:
                del self._entries[sid]
        return len(expired)

    async def run_sweeper(self, interval_seconds: float = 3600) -> None:
        """Sweep expired sessions on a fixed cadence until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            evicted = self.sweep()
            if evicted > 0:
                logger.info(f"Evicted {evicted} expired session(s)")


# Global cache instance
session_cache: SessionStore = SessionCache(ttl=settings.session_ttl)
