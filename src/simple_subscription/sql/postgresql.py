# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""PostgreSQL handle using a psycopg3 connection pool."""

from __future__ import annotations

import re
from typing import Any

from .base import DbAdapter, Params, Row

_NAMED_PARAM = re.compile(r"(?<!:):([A-Za-z_]\w*)")


def to_pyformat(query: str) -> str:
    """Rewrite ``:name`` placeholders as psycopg's ``%(name)s``.

    ``::type`` casts are left alone and literal ``%`` signs are doubled.
    """
    return _NAMED_PARAM.sub(r"%(\1)s", query.replace("%", "%%"))


class PostgresAdapter(DbAdapter):
    """Pool of psycopg connections returning rows as dicts.

    Attributes:
        dsn: libpq connection string.
        max_size: Upper bound of pooled connections.
        connect_timeout: Seconds :meth:`connect` waits for the first connection.
    """

    backend = "postgresql"

    def __init__(self, dsn: str, max_size: int = 10, connect_timeout: float = 5.0):
        try:
            import psycopg_pool  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "PostgreSQL support requires psycopg. "
                "Install with: pip install simple-subscription[postgresql]"
            ) from e
        self.dsn = dsn
        self.max_size = max_size
        self.connect_timeout = connect_timeout
        self._pool: Any = None

    async def connect(self) -> None:
        from psycopg.rows import dict_row
        from psycopg_pool import AsyncConnectionPool

        pool = AsyncConnectionPool(
            self.dsn,
            min_size=1,
            max_size=self.max_size,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self.connect_timeout)
        except BaseException:
            await pool.close()
            raise
        self._pool = pool

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    def _require_pool(self) -> Any:
        if self._pool is None:
            raise RuntimeError("postgresql adapter is not connected")
        return self._pool

    async def execute(self, query: str, params: Params = None) -> int:
        async with self._require_pool().connection() as conn:
            cursor = await conn.execute(to_pyformat(query), params or {})
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Params = None) -> list[Row]:
        async with self._require_pool().connection() as conn:
            cursor = await conn.execute(to_pyformat(query), params or {})
            return await cursor.fetchall()
