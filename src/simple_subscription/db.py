# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database connection at process start.

The database container may still be booting when the service starts, so
opening the connection is retried a bounded number of times. A failure that
survives every attempt is fatal: the process must not start serving.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from .logger import get_logger
from .sql import DbAdapter, create_adapter

logger = get_logger("db")


class StartupError(RuntimeError):
    """Raised when a collaborator required to serve cannot be reached."""


async def connect_to_db(
    dsn: str,
    *,
    attempts: int = 10,
    delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> DbAdapter:
    """Connect to the database, retrying while it is not reachable yet.

    Each attempt creates the adapter and connects. Once connected, a ping
    that fails is returned as an error immediately, without further retries.

    Args:
        dsn: Connection string understood by :func:`~simple_subscription.sql.create_adapter`.
        attempts: Maximum number of connection attempts.
        delay: Seconds to wait between attempts.
        sleep: Awaitable sleep function, replaceable in tests.

    Returns:
        A connected adapter.

    Raises:
        ValueError: If the DSN is malformed.
        StartupError: If no attempt succeeded or the ping failed.
    """
    for attempt in range(1, attempts + 1):
        adapter = create_adapter(dsn)
        try:
            await adapter.connect()
        except Exception as exc:
            logger.info("database not yet ready (attempt %d/%d): %s", attempt, attempts, exc)
            if attempt < attempts:
                await sleep(delay)
            continue
        try:
            await adapter.ping()
        except Exception as exc:
            await adapter.close()
            raise StartupError(f"database ping failed: {exc}") from exc
        logger.info("connected to database")
        return adapter
    raise StartupError("cannot connect to database")
