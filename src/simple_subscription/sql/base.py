# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Common interface of the database handles opened at startup."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]
Params = dict[str, Any] | None


class DbAdapter(ABC):
    """Connected database handle shared by the whole process.

    Queries use ``:name`` placeholders on every backend. Rows come back as
    plain dicts keyed by column name.
    """

    #: Backend name used in log messages.
    backend = "unknown"

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection; raises when the server is not reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call twice."""

    @abstractmethod
    async def execute(self, query: str, params: Params = None) -> int:
        """Run a statement and commit it, returning the affected row count."""

    @abstractmethod
    async def fetch_all(self, query: str, params: Params = None) -> list[Row]:
        ...

    async def fetch_one(self, query: str, params: Params = None) -> Row | None:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    async def ping(self) -> None:
        """Round-trip a trivial query; raises if the database does not answer."""
        row = await self.fetch_one("SELECT 1 AS ok")
        if not row or row.get("ok") != 1:
            raise RuntimeError(f"unexpected ping answer from {self.backend}: {row!r}")
