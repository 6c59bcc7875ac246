# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite handle using aiosqlite."""

from __future__ import annotations

import asyncio

import aiosqlite

from .base import DbAdapter, Params, Row


class SqliteAdapter(DbAdapter):
    """Single aiosqlite connection kept open for the process lifetime.

    Statements are serialized through a lock; an in-memory database keeps
    its content until :meth:`close`.
    """

    backend = "sqlite"

    def __init__(self, database: str):
        self.database = database or ":memory:"
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self.database)
        self._conn.row_factory = aiosqlite.Row

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await conn.close()

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("sqlite adapter is not connected")
        return self._conn

    async def execute(self, query: str, params: Params = None) -> int:
        conn = self._connection()
        async with self._lock:
            cursor = await conn.execute(query, params or {})
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Params = None) -> list[Row]:
        conn = self._connection()
        async with self._lock:
            async with conn.execute(query, params or {}) as cursor:
                return [dict(row) for row in await cursor.fetchall()]
