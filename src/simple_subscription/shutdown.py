# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Graceful shutdown for the mail dispatch layer.

The coordinator waits for an external cancellation event (SIGINT, SIGTERM or
a call to :meth:`ShutdownCoordinator.trigger`), then:

1. waits until the shared in-flight counter reaches zero (no timeout),
2. hands the done signal to the mailer's consume loop,
3. closes the mailer channels (message queue, error queue, done signal),
4. runs the exit callback so the process can leave with status 0.

A background task that never finishes stalls step 1 indefinitely.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable

from .inflight import InFlightCounter
from .logger import get_loggers
from .mailer import Mailer

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Drain tracked work, stop the mailer and release its channels.

    Attributes:
        mailer: The mailer whose loop is stopped and channels closed.
        wait: Shared in-flight counter used as the rendezvous barrier.
        on_exit: Callback run after cleanup, whatever its outcome.
    """

    def __init__(
        self,
        mailer: Mailer,
        wait: InFlightCounter,
        *,
        on_exit: Callable[[], None] | None = None,
        info_logger: logging.Logger | None = None,
        error_logger: logging.Logger | None = None,
    ):
        default_info, default_error = get_loggers()
        self.mailer = mailer
        self.wait = wait
        self.on_exit = on_exit
        self.info_logger = info_logger or default_info
        self.error_logger = error_logger or default_error
        self._triggered = asyncio.Event()
        self._shutdown_task: asyncio.Task[None] | None = None
        self._installed: list[signal.Signals] = []

    @property
    def triggered(self) -> bool:
        return self._triggered.is_set()

    def trigger(self) -> None:
        """Raise the external cancellation event."""
        self._triggered.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Route SIGINT and SIGTERM to :meth:`trigger` on the running loop."""
        loop = loop or asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:  # pragma: no cover - non-unix platforms
                signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(self.trigger))
            self._installed.append(sig)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        while self._installed:
            sig = self._installed.pop()
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:  # pragma: no cover - non-unix platforms
                signal.signal(sig, signal.SIG_DFL)

    def _on_signal(self, sig: signal.Signals) -> None:
        self.info_logger.info("Received %s", signal.Signals(sig).name)
        self.trigger()

    async def listen(self) -> None:
        """Wait for the cancellation event, shut down, then run the exit callback."""
        await self._triggered.wait()
        try:
            await self.shutdown()
        finally:
            if self.on_exit is not None:
                self.on_exit()

    async def shutdown(self) -> None:
        """Run the cleanup sequence exactly once.

        Concurrent and later calls wait for the first run. Errors in the wait
        or signal phase are logged; the channels are closed only when the
        barrier cleared and the loop acknowledged the done signal.
        """
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._run_shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _run_shutdown(self) -> None:
        self.info_logger.info("run cleanup task")
        try:
            await self.wait.wait()
            await self.mailer.signal_done()
        except Exception:
            self.error_logger.exception("Shutdown failed while draining background work")
            return
        self.info_logger.info("closing channels and shutting down application...")
        self.mailer.close()
