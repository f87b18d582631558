import asyncio
from datetime import timedelta

import pytest

from wrapped.models import SessionRecord
from wrapped.session_cache import SessionCache


class _FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _record(jti: str = "jti-1") -> SessionRecord:
    return SessionRecord(
        jti=jti, upstream_user_id="user1", upstream_token="token-1", username="alice"
    )


def test_create_stamps_and_get_returns_record():
    clock = _FakeClock()
    cache = SessionCache(ttl=timedelta(hours=24), clock=clock)

    cache.create("jti-1", _record())

    record = cache.get("jti-1")
    assert record is not None
    assert record.username == "alice"
    assert record.created_at == 1_000.0
    assert len(cache) == 1


def test_get_missing_returns_none():
    cache = SessionCache(clock=_FakeClock())

    assert cache.get("nope") is None


def test_expired_entry_is_evicted_on_read():
    clock = _FakeClock()
    cache = SessionCache(ttl=timedelta(hours=24), clock=clock)
    cache.create("jti-1", _record())

    clock.advance(24 * 3600)
    assert cache.get("jti-1") is not None

    clock.advance(1)
    assert cache.get("jti-1") is None
    assert cache.get("jti-1") is None
    assert len(cache) == 0


def test_create_replaces_and_restamps():
    clock = _FakeClock()
    cache = SessionCache(ttl=timedelta(seconds=60), clock=clock)
    cache.create("jti-1", _record())

    clock.advance(50)
    cache.create("jti-1", _record().model_copy(update={"username": "bob"}))
    clock.advance(50)

    record = cache.get("jti-1")
    assert record is not None
    assert record.username == "bob"


def test_delete_reports_whether_entry_existed():
    cache = SessionCache(clock=_FakeClock())
    cache.create("jti-1", _record())

    assert cache.delete("jti-1") is True
    assert cache.delete("jti-1") is False
    assert cache.get("jti-1") is None


def test_sweep_removes_only_expired_entries():
    clock = _FakeClock()
    cache = SessionCache(ttl=timedelta(seconds=60), clock=clock)
    cache.create("old", _record("old"))
    clock.advance(30)
    cache.create("new", _record("new"))
    clock.advance(45)

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new") is not None
    assert cache.sweep() == 0


@pytest.mark.asyncio
async def test_run_sweeper_evicts_unread_expired_entries():
    clock = _FakeClock()
    cache = SessionCache(ttl=timedelta(seconds=60), clock=clock)
    cache.create("idle", _record("idle"))
    clock.advance(61)

    task = asyncio.create_task(cache.run_sweeper(interval_seconds=0.01))
    try:
        for _ in range(100):
            await asyncio.sleep(0.01)
            if len(cache) == 0:
                break
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert len(cache) == 0
