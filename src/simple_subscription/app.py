# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Application core: composition root of the subscription service.

:class:`Application` owns every collaborator (database adapter, session
manager, loggers, in-flight counter, mailer, shutdown coordinator) and runs
the process:

1. the mailer's consume loop as a background task,
2. the shutdown listener as a background task,
3. the HTTP server in the foreground.

SIGINT and SIGTERM belong to the shutdown coordinator. Uvicorn's own signal
capture is disabled; once the coordinator has drained in-flight work and
closed the mailer channels it asks the server to exit.

Example:
    Running the service::

        settings = load_settings()
        application = await Application.build(settings)
        await application.run()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterator

import uvicorn

from .api import create_app
from .config_loader import Settings
from .db import connect_to_db
from .inflight import InFlightCounter
from .logger import configure_logging, get_loggers
from .mailer import Mailer
from .prometheus import MailMetrics
from .sessions import SessionManager, create_session_manager
from .shutdown import ShutdownCoordinator
from .sql import DbAdapter


class ServeError(RuntimeError):
    """Raised when the HTTP server cannot bind or stops serving abnormally."""


class _Server(uvicorn.Server):
    """Uvicorn server that leaves signal handling to the shutdown coordinator."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class Application:
    """Process-wide container for the service collaborators.

    Attributes:
        settings: Complete process configuration.
        db: Connected database adapter.
        sessions: Session manager.
        info_logger: Logger for lifecycle events.
        error_logger: Logger for failures.
        wait: Shared in-flight counter.
        metrics: Prometheus collector.
        mailer: Outbound mail queue and consume loop.
        coordinator: Graceful shutdown coordinator.
    """

    def __init__(
        self,
        settings: Settings,
        db: DbAdapter,
        sessions: SessionManager,
        *,
        mailer: Mailer | None = None,
        metrics: MailMetrics | None = None,
        wait: InFlightCounter | None = None,
        info_logger: logging.Logger | None = None,
        error_logger: logging.Logger | None = None,
    ):
        default_info, default_error = get_loggers()
        self.settings = settings
        self.db = db
        self.sessions = sessions
        self.info_logger = info_logger or default_info
        self.error_logger = error_logger or default_error
        self.metrics = metrics or MailMetrics()
        self.wait = wait or InFlightCounter(on_change=self.metrics.set_inflight)
        self.mailer = mailer or Mailer(
            settings.mail,
            self.wait,
            metrics=self.metrics,
            info_logger=self.info_logger,
            error_logger=self.error_logger,
        )
        self.coordinator = ShutdownCoordinator(
            self.mailer,
            self.wait,
            on_exit=self.request_exit,
            info_logger=self.info_logger,
            error_logger=self.error_logger,
        )
        self.server: uvicorn.Server | None = None
        self._tasks: list[asyncio.Task] = []

    @classmethod
    async def build(cls, settings: Settings) -> Application:
        """Configure logging and connect the collaborators.

        Raises:
            StartupError: If the database or the session backend is unreachable.
        """
        configure_logging(settings.log_level)
        db = await connect_to_db(settings.dsn, attempts=settings.db_connect_attempts)
        try:
            sessions = await create_session_manager(settings.session)
        except BaseException:
            await db.close()
            raise
        return cls(settings, db, sessions)

    def create_server(self) -> uvicorn.Server:
        app = create_app(self.mailer, api_token=self.settings.api_token)
        app.state.sessions = self.sessions
        app.state.db = self.db
        config = uvicorn.Config(
            app,
            host=self.settings.http_host,
            port=self.settings.http_port,
            log_config=None,
            lifespan="on",
        )
        return _Server(config)

    def start_background_tasks(self) -> None:
        """Start the consume loop and the shutdown listener."""
        self._tasks = [
            asyncio.create_task(self.mailer.consume_loop(), name="mailer-consume-loop"),
            asyncio.create_task(self.coordinator.listen(), name="shutdown-listener"),
        ]

    def request_exit(self) -> None:
        """Ask the HTTP server to stop once shutdown cleanup ran."""
        if self.server is not None:
            self.server.should_exit = True

    async def serve(self) -> None:
        """Run the HTTP server until it exits.

        Raises:
            ServeError: If the server fails to bind or to serve.
        """
        self.server = self.create_server()
        self.info_logger.info("starting server on %s", self.settings.http_port)
        try:
            await self.server.serve()
        except (OSError, SystemExit) as exc:
            # uvicorn exits with status 1 when the socket cannot be bound
            raise ServeError(f"HTTP server failed: {exc}") from exc
        if not self.server.started:
            raise ServeError("HTTP server failed to start")

    async def run(self) -> None:
        """Run the whole process: background tasks, then HTTP in the foreground."""
        self.start_background_tasks()
        self.coordinator.install_signal_handlers()
        try:
            await self.serve()
            if self.coordinator.triggered:
                await self.coordinator.shutdown()
        except ServeError:
            self.error_logger.exception("HTTP server failed")
            raise
        finally:
            self.coordinator.remove_signal_handlers()
            await self.close()

    async def close(self) -> None:
        """Cancel leftover tasks and release the collaborators."""
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.sessions.close()
        await self.db.close()
