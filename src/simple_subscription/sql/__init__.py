# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database handles for the ``DSN`` setting.

Usage:
    adapter = create_adapter("sqlite:/data/subscriptions.db")
    adapter = create_adapter("postgresql://app:secret@db/subscriptions")

    await adapter.connect()
    await adapter.ping()
    row = await adapter.fetch_one("SELECT email FROM users WHERE id = :id", {"id": 1})
    await adapter.close()
"""

from .base import DbAdapter
from .sqlite import SqliteAdapter

__all__ = [
    "DbAdapter",
    "SqliteAdapter",
    "create_adapter",
]


def create_adapter(dsn: str) -> DbAdapter:
    """Return an unconnected adapter for ``dsn``.

    Accepted forms:
        - ``/abs/path.db`` or ``:memory:``
        - ``sqlite:<path>`` (``sqlite::memory:`` for an in-memory database)
        - ``postgresql://...`` or ``postgres://...``

    Raises:
        ValueError: If the scheme is missing or unknown.
    """
    if dsn.startswith("/") or dsn == ":memory:":
        return SqliteAdapter(dsn)

    scheme, sep, rest = dsn.partition(":")
    if not sep:
        raise ValueError(
            f"Invalid connection string: '{dsn}'. "
            "Expected 'type:connection_info' or absolute path."
        )

    scheme = scheme.lower()
    if scheme == "sqlite":
        return SqliteAdapter(rest)
    if scheme in ("postgresql", "postgres"):
        from .postgresql import PostgresAdapter

        return PostgresAdapter(f"postgresql:{rest}")

    raise ValueError(f"Unknown database type: '{scheme}'. Supported: sqlite, postgresql")
