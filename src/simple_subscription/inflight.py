# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared counter of outstanding asynchronous work.

Producers call :meth:`InFlightCounter.add` before handing off work that
completes in the background and :meth:`InFlightCounter.done` when it
finishes. Shutdown waits on :meth:`InFlightCounter.wait` until the count
drops to zero.

All mutations run without a suspension point, so on the event loop they are
atomic with respect to every other task.

Example:
    Tracking a background job::

        counter = InFlightCounter()

        async with counter.track():
            await do_background_work()

        await counter.wait()  # returns immediately, count is zero
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager


class InFlightCounter:
    """Counting rendezvous barrier for background work.

    Attributes:
        on_change: Optional callback receiving the new count after each
            mutation (used to feed the in-flight gauge).
    """

    def __init__(self, on_change: Callable[[int], None] | None = None):
        self._count = 0
        self._zero = asyncio.Event()
        self._zero.set()
        self.on_change = on_change

    @property
    def count(self) -> int:
        """Current number of outstanding tasks."""
        return self._count

    def add(self, n: int = 1) -> None:
        """Adjust the counter by ``n`` (may be negative).

        Raises:
            ValueError: If the counter would become negative.
        """
        new_count = self._count + n
        if new_count < 0:
            raise ValueError("negative in-flight counter")
        self._count = new_count
        if new_count == 0:
            self._zero.set()
        else:
            self._zero.clear()
        if self.on_change is not None:
            self.on_change(new_count)

    def done(self) -> None:
        """Mark one unit of work as finished."""
        self.add(-1)

    async def wait(self) -> None:
        """Block until the counter reaches zero. No timeout."""
        while self._count:
            await self._zero.wait()

    @asynccontextmanager
    async def track(self) -> AsyncIterator[None]:
        """Count the body of an ``async with`` block as in-flight work."""
        self.add(1)
        try:
            yield
        finally:
            self.done()
