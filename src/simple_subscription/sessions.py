# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Server-side sessions backed by Redis or process memory.

Session data is a JSON object stored under ``session:<token>`` with the
configured lifetime as TTL. The browser only holds the opaque token in a
cookie whose attributes come from :class:`~simple_subscription.config_loader.SessionSettings`.

Example:
    Loading and saving a session::

        manager = await create_session_manager(settings.session)
        token = await manager.commit({"user_id": 42})
        data = await manager.load(token)
"""

from __future__ import annotations

import json
import secrets
import time
from typing import TYPE_CHECKING, Any, Protocol

from .db import StartupError
from .logger import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

    from .config_loader import SessionSettings

SESSION_PREFIX = "session:"

logger = get_logger("sessions")


class SessionStore(Protocol):
    async def find(self, token: str) -> bytes | None: ...

    async def commit(self, token: str, data: bytes, ttl_seconds: int) -> None: ...

    async def delete(self, token: str) -> None: ...

    async def close(self) -> None: ...


class MemorySessionStore:
    """In-process store, used when no Redis address is configured."""

    def __init__(self) -> None:
        self._items: dict[str, tuple[bytes, float]] = {}

    async def find(self, token: str) -> bytes | None:
        entry = self._items.get(token)
        if entry is None:
            return None
        data, expires_at = entry
        if time.monotonic() >= expires_at:
            self._items.pop(token, None)
            return None
        return data

    async def commit(self, token: str, data: bytes, ttl_seconds: int) -> None:
        self._items[token] = (data, time.monotonic() + ttl_seconds)

    async def delete(self, token: str) -> None:
        self._items.pop(token, None)

    async def close(self) -> None:
        self._items.clear()


class RedisSessionStore:
    """Redis store using ``SETEX`` so expiry is enforced by the server."""

    def __init__(self, client: AsyncRedis) -> None:
        self._redis = client

    def _key(self, token: str) -> str:
        return f"{SESSION_PREFIX}{token}"

    async def find(self, token: str) -> bytes | None:
        return await self._redis.get(self._key(token))

    async def commit(self, token: str, data: bytes, ttl_seconds: int) -> None:
        await self._redis.setex(self._key(token), ttl_seconds, data)

    async def delete(self, token: str) -> None:
        await self._redis.delete(self._key(token))

    async def close(self) -> None:
        await self._redis.aclose()


class SessionManager:
    """Create, load and destroy sessions in a :class:`SessionStore`.

    Attributes:
        store: Backend holding serialized session data.
        settings: Lifetime and cookie attributes.
    """

    def __init__(self, store: SessionStore, settings: SessionSettings):
        self.store = store
        self.settings = settings

    async def load(self, token: str | None) -> dict[str, Any]:
        """Return the session data for ``token``, empty when unknown or expired."""
        if not token:
            return {}
        raw = await self.store.find(token)
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable session data")
            return {}
        return data if isinstance(data, dict) else {}

    async def commit(self, data: dict[str, Any], token: str | None = None) -> str:
        """Store ``data`` and return the session token (a new one when omitted)."""
        token = token or secrets.token_urlsafe(32)
        payload = json.dumps(data, default=str).encode("utf-8")
        await self.store.commit(token, payload, self.settings.lifetime_seconds)
        return token

    async def destroy(self, token: str) -> None:
        await self.store.delete(token)

    def cookie_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``Response.set_cookie`` (minus the value)."""
        kwargs: dict[str, Any] = {
            "key": self.settings.cookie_name,
            "httponly": True,
            "secure": self.settings.cookie_secure,
            "samesite": self.settings.cookie_same_site,
            "path": "/",
        }
        if self.settings.cookie_persist:
            kwargs["max_age"] = self.settings.lifetime_seconds
        return kwargs

    async def close(self) -> None:
        await self.store.close()


async def create_session_manager(settings: SessionSettings) -> SessionManager:
    """Build the session manager, connecting to Redis when configured.

    Raises:
        StartupError: If the Redis server does not answer ``PING``.
    """
    if not settings.redis:
        logger.info("No Redis address configured, sessions are kept in memory")
        return SessionManager(MemorySessionStore(), settings)

    from redis.asyncio import Redis as AsyncRedis
    from redis.exceptions import RedisError

    url = settings.redis if "://" in settings.redis else f"redis://{settings.redis}"
    client = AsyncRedis.from_url(
        url,
        decode_responses=False,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        max_connections=10,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        await client.aclose()
        raise StartupError(f"cannot connect to redis at {settings.redis}: {exc}") from exc
    logger.info("connected to redis")
    return SessionManager(RedisSessionStore(client), settings)
