import pytest
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from simple_subscription.config_loader import SessionSettings
from simple_subscription.db import StartupError
from simple_subscription.sessions import (
    MemorySessionStore,
    RedisSessionStore,
    SessionManager,
    create_session_manager,
)


class FakeRedis:
    def __init__(self, ping_error=None):
        self.data = {}
        self.ttls = {}
        self.ping_error = ping_error
        self.closed = False

    async def ping(self):
        if self.ping_error:
            raise self.ping_error
        return True

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        self.data.pop(key, None)

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_memory_manager_commit_load_destroy():
    manager = SessionManager(MemorySessionStore(), SessionSettings())
    token = await manager.commit({"user_id": 42})
    assert len(token) >= 32
    assert await manager.load(token) == {"user_id": 42}

    assert await manager.commit({"user_id": 43}, token=token) == token
    assert await manager.load(token) == {"user_id": 43}

    await manager.destroy(token)
    assert await manager.load(token) == {}
    assert await manager.load(None) == {}
    assert await manager.load("unknown") == {}


@pytest.mark.asyncio
async def test_memory_store_expires_entries():
    store = MemorySessionStore()
    await store.commit("live", b"{}", ttl_seconds=60)
    await store.commit("stale", b"{}", ttl_seconds=0)
    assert await store.find("live") == b"{}"
    assert await store.find("stale") is None
    assert "stale" not in store._items


@pytest.mark.asyncio
async def test_unreadable_session_data_is_discarded():
    store = MemorySessionStore()
    await store.commit("t", b"not json", ttl_seconds=60)
    await store.commit("list", b"[1, 2]", ttl_seconds=60)
    manager = SessionManager(store, SessionSettings())
    assert await manager.load("t") == {}
    assert await manager.load("list") == {}


def test_cookie_attributes():
    manager = SessionManager(MemorySessionStore(), SessionSettings())
    assert manager.cookie_kwargs() == {
        "key": "session",
        "httponly": True,
        "secure": True,
        "samesite": "lax",
        "path": "/",
        "max_age": 86400,
    }

    session_only = SessionManager(MemorySessionStore(), SessionSettings(cookie_persist=False))
    assert "max_age" not in session_only.cookie_kwargs()


@pytest.mark.asyncio
async def test_redis_store_uses_prefixed_keys_with_ttl():
    client = FakeRedis()
    manager = SessionManager(RedisSessionStore(client), SessionSettings(lifetime_seconds=120))
    token = await manager.commit({"flash": "welcome"})

    key = f"session:{token}"
    assert client.ttls[key] == 120
    assert await manager.load(token) == {"flash": "welcome"}

    await manager.destroy(token)
    assert key not in client.data
    await manager.close()
    assert client.closed


@pytest.mark.asyncio
async def test_without_redis_sessions_stay_in_memory():
    manager = await create_session_manager(SessionSettings(redis=None))
    assert isinstance(manager.store, MemorySessionStore)


@pytest.mark.asyncio
async def test_redis_address_without_scheme_is_accepted(monkeypatch):
    client = FakeRedis()
    urls = []

    def from_url(url, **kwargs):
        urls.append(url)
        return client

    monkeypatch.setattr(AsyncRedis, "from_url", from_url)
    manager = await create_session_manager(SessionSettings(redis="cache:6379"))

    assert urls == ["redis://cache:6379"]
    assert isinstance(manager.store, RedisSessionStore)


@pytest.mark.asyncio
async def test_unreachable_redis_is_a_startup_error(monkeypatch):
    client = FakeRedis(ping_error=RedisConnectionError("connection refused"))
    monkeypatch.setattr(AsyncRedis, "from_url", lambda url, **kwargs: client)

    with pytest.raises(StartupError, match="cannot connect to redis"):
        await create_session_manager(SessionSettings(redis="redis://cache:6379/0"))
    assert client.closed
