import httpx
import pytest

import wrapped.jellyfin_client as jellyfin_client_module
from wrapped.jellyfin_client import AuthenticationError, JellyfinClient, authenticate


class _FakeResponse:
    def __init__(self, status_code: int, payload: dict | list | None = None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class _FakeAsyncClient:
    """Replays queued responses; an exception in the queue is raised instead."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.gets = []
        self.posts = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def _next(self):
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return self._next()

    async def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self._next()


def _install(monkeypatch, responses) -> _FakeAsyncClient:
    client = _FakeAsyncClient(responses)
    monkeypatch.setattr(jellyfin_client_module.httpx, "AsyncClient", lambda *a, **kw: client)
    return client


def _items_payload(*ids):
    return {"Items": [{"Id": i, "Name": f"Item {i}", "RunTimeTicks": 36_000_000_000} for i in ids]}


def _client() -> JellyfinClient:
    return JellyfinClient("http://jellyfin.test/", "user-1", "user-token")


@pytest.mark.asyncio
async def test_get_items_batches_by_one_hundred(monkeypatch):
    ids = [f"id-{n}" for n in range(250)]
    fake = _install(
        monkeypatch,
        [
            _FakeResponse(200, _items_payload(*ids[:100])),
            _FakeResponse(200, _items_payload(*ids[100:200])),
            _FakeResponse(200, _items_payload(*ids[200:])),
        ],
    )

    items = await _client().get_items(ids)

    assert len(fake.gets) == 3
    batch_sizes = [len(kwargs["params"]["ids"].split(",")) for _, kwargs in fake.gets]
    assert batch_sizes == [100, 100, 50]
    url, kwargs = fake.gets[0]
    assert url == "http://jellyfin.test/Users/user-1/Items"
    assert kwargs["params"]["fields"] == "ParentId,People,Genres"
    assert kwargs["headers"] == {"X-Emby-Token": "user-token"}
    assert len(items) == 250
    assert items[0].duration_seconds == 3600


@pytest.mark.asyncio
async def test_get_items_skips_failed_batches(monkeypatch):
    ids = [f"id-{n}" for n in range(250)]
    _install(
        monkeypatch,
        [
            _FakeResponse(200, _items_payload(*ids[:100])),
            _FakeResponse(500, {}),
            httpx.ConnectError("connection refused"),
        ],
    )
    client = _client()

    items = await client.get_items(ids)

    assert [item.id for item in items] == ids[:100]
    assert client.failed_batches == 2


@pytest.mark.asyncio
async def test_get_items_empty_makes_no_request(monkeypatch):
    fake = _install(monkeypatch, [])

    assert await _client().get_items([]) == []
    assert fake.gets == []


@pytest.mark.asyncio
async def test_get_items_maps_people_and_parent(monkeypatch):
    payload = {
        "Items": [
            {
                "Id": "e1",
                "ParentId": "s1",
                "Name": "Pilot",
                "People": [{"Name": "Alice", "Id": "p1", "Role": "Lead", "Type": "Actor"}],
                "Genres": ["Drama"],
            }
        ]
    }
    _install(monkeypatch, [_FakeResponse(200, payload)])

    (item,) = await _client().get_items(["e1"])

    assert item.parent_id == "s1"
    assert item.people[0].name == "Alice"
    assert item.has_person("Alice")
    assert item.genres == ["Drama"]
    assert item.duration_seconds == 0


@pytest.mark.asyncio
async def test_show_episode_stats(monkeypatch):
    fake = _install(
        monkeypatch,
        [_FakeResponse(200, {"TotalRecordCount": 10}), _FakeResponse(200, {"TotalRecordCount": 4})],
    )

    stats = await _client().get_show_episode_stats("show-1")

    assert (stats.total, stats.watched) == (10, 4)
    assert fake.gets[0][1]["params"]["parentId"] == "show-1"
    assert "filters" not in fake.gets[0][1]["params"]
    assert fake.gets[1][1]["params"]["filters"] == "IsPlayed"


@pytest.mark.asyncio
async def test_show_episode_stats_failure_yields_zeros(monkeypatch):
    _install(monkeypatch, [_FakeResponse(404, {})])

    stats = await _client().get_show_episode_stats("show-1")

    assert (stats.total, stats.watched) == (0, 0)


@pytest.mark.asyncio
async def test_authenticate_returns_user_and_token(monkeypatch):
    fake = _install(
        monkeypatch,
        [_FakeResponse(200, {"User": {"Id": "user-1", "Name": "alice"}, "AccessToken": "tok"})],
    )

    result = await authenticate("http://jellyfin.test", "alice", "secret")

    assert (result.user_id, result.username, result.access_token) == ("user-1", "alice", "tok")
    url, kwargs = fake.posts[0]
    assert url == "http://jellyfin.test/Users/AuthenticateByName"
    assert kwargs["json"] == {"Username": "alice", "Pw": "secret"}
    assert kwargs["headers"]["X-Emby-Authorization"].startswith("MediaBrowser ")


@pytest.mark.asyncio
async def test_authenticate_rejected(monkeypatch):
    _install(monkeypatch, [_FakeResponse(401, {})])

    with pytest.raises(AuthenticationError):
        await authenticate("http://jellyfin.test", "alice", "wrong")
