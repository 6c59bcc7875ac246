# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounded mail queue with a single consumer loop.

Request handlers hand messages to :meth:`Mailer.enqueue` and return
immediately; :meth:`Mailer.consume_loop`, running as its own task, delivers
them one at a time in enqueue order. Delivery failures never reach the
caller: they are pushed on the error-report queue and logged by the loop,
which keeps running.

The loop multiplexes three sources and, when several are ready, serves them
in this order:

1. the done signal: the loop returns at once, queued messages are left
   behind;
2. error reports: logged and counted;
3. messages: rendered and sent.

Each enqueued message holds one unit of the shared in-flight counter until
its outcome is known (sent, or its error reported). Shutdown waits on that
counter before calling :meth:`Mailer.signal_done` and :meth:`Mailer.close`,
so nothing is lost when the protocol is followed.

Example:
    Wiring the mailer::

        counter = InFlightCounter()
        mailer = Mailer(settings.mail, counter)
        loop_task = asyncio.create_task(mailer.consume_loop())

        await mailer.enqueue(Message(to="user@example.com", subject="Hi", body="..."))

        await counter.wait()
        await mailer.signal_done()
        mailer.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from email.message import EmailMessage
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from .inflight import InFlightCounter
from .logger import get_loggers
from .models import Message
from .prometheus import MailMetrics
from .rendering import MessageRenderer
from .transport import SMTPTransport

if TYPE_CHECKING:
    from .config_loader import MailSettings


class Transport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class MailerState(str, Enum):
    """Lifecycle of the consume loop. STOPPED is terminal."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class MailerClosedError(RuntimeError):
    """Raised when work is handed to a mailer whose channels are closed."""

    def __init__(self, message: str = "mailer is closed"):
        super().__init__(message)


class DeliveryError(Exception):
    """A failed delivery attempt for one message.

    Attributes:
        message: The message that could not be delivered.
        cause: The underlying exception.
    """

    def __init__(self, message: Message, cause: BaseException):
        super().__init__(f"delivery to {message.to} failed: {cause}")
        self.message = message
        self.cause = cause


class Mailer:
    """Owns the outbound queue, the error-report queue and the done signal.

    Attributes:
        settings: Static delivery configuration, never mutated.
        wait: Shared in-flight counter, also awaited by the shutdown path.
        transport: Object with an ``async send(EmailMessage)`` method.
        renderer: Builds ``EmailMessage`` objects from messages.
        metrics: Prometheus collector.
        on_error: Optional callback invoked by the loop for every reported error.
        mailer_queue: Bounded FIFO of pending messages.
        error_queue: Unbounded queue of pending error reports.
        state: Current :class:`MailerState`.
    """

    def __init__(
        self,
        settings: MailSettings,
        wait: InFlightCounter,
        *,
        transport: Transport | None = None,
        renderer: MessageRenderer | None = None,
        metrics: MailMetrics | None = None,
        info_logger: logging.Logger | None = None,
        error_logger: logging.Logger | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        default_info, default_error = get_loggers()
        self.settings = settings
        self.wait = wait
        self.transport = transport or SMTPTransport(settings)
        self.renderer = renderer or MessageRenderer(settings)
        self.metrics = metrics or MailMetrics()
        self.info_logger = info_logger or default_info
        self.error_logger = error_logger or default_error
        self.on_error = on_error

        self.mailer_queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=settings.queue_size)
        self.error_queue: asyncio.Queue[Exception] = asyncio.Queue()
        self._done = asyncio.Event()
        self._stopped = asyncio.Event()
        self._wakeup = asyncio.Event()
        self._closed = False
        self.state = MailerState.IDLE

    @property
    def closed(self) -> bool:
        return self._closed

    # ----------------------------------------------------------------- producers
    def _check_accepting(self) -> None:
        # once the loop is told to stop nothing would drain new work
        if self._closed:
            raise MailerClosedError()
        if self._done.is_set():
            raise MailerClosedError("mailer is shutting down")

    async def enqueue(self, message: Message) -> None:
        """Queue a message for delivery, suspending while the queue is full.

        The message is counted as in-flight work from this point until its
        outcome is known. Returns as soon as the message is queued; delivery
        success or failure is never reported back to the caller.

        The queued copy is deep-copied, so later changes to the caller's
        ``data`` or attachments do not reach the delivered message.

        Raises:
            MailerClosedError: If the done signal was sent or the channels are closed.
        """
        self._check_accepting()
        message = message.model_copy(deep=True)
        self.wait.add(1)
        try:
            await self.mailer_queue.put(message)
        except BaseException:
            self.wait.done()
            raise
        self.metrics.set_queued(self.mailer_queue.qsize())
        self._wakeup.set()

    def report_error(self, error: Exception) -> None:
        """Push an error on the report queue without ever blocking.

        The report counts as in-flight work until the loop has logged it.

        Raises:
            MailerClosedError: If the done signal was sent or the channels are closed.
        """
        self._check_accepting()
        self.wait.add(1)
        self.error_queue.put_nowait(error)
        self._wakeup.set()

    # ------------------------------------------------------------------ consumer
    async def consume_loop(self) -> None:
        """Serve done signal, error reports and messages until done.

        Raises:
            RuntimeError: If the loop already ran; STOPPED is terminal.
        """
        if self.state is not MailerState.IDLE:
            raise RuntimeError(f"consume loop cannot start from state {self.state.value!r}")
        self.state = MailerState.RUNNING
        self.info_logger.debug("Mail consume loop started")
        try:
            while True:
                if self._done.is_set():
                    return
                if not self.error_queue.empty():
                    error = self.error_queue.get_nowait()
                    try:
                        self._log_error(error)
                    finally:
                        self.wait.done()
                    continue
                if not self.mailer_queue.empty():
                    message = self.mailer_queue.get_nowait()
                    self.metrics.set_queued(self.mailer_queue.qsize())
                    await self.send(message)
                    continue
                self._wakeup.clear()
                await self._wakeup.wait()
        finally:
            self.state = MailerState.STOPPED
            self._stopped.set()
            self.info_logger.debug("Mail consume loop stopped")

    async def send(self, message: Message) -> None:
        """Render and deliver one dequeued message.

        Failures are wrapped in :class:`DeliveryError` and moved, together
        with the message's in-flight unit, onto the error-report queue.
        """
        try:
            email_msg = await self.renderer.build(message)
            await self.transport.send(email_msg)
        except Exception as exc:
            self.error_queue.put_nowait(DeliveryError(message, exc))
            self._wakeup.set()
            return
        try:
            self.metrics.inc_sent()
            self.info_logger.info("Mail sent to %s (subject=%r)", message.to, message.subject)
        finally:
            self.wait.done()

    def _log_error(self, error: Exception) -> None:
        self.error_logger.error("%s", error)
        try:
            self.metrics.inc_error()
            if self.on_error is not None:
                self.on_error(error)
        except Exception:
            self.error_logger.exception("Error report hook failed")

    # ------------------------------------------------------------------ shutdown
    async def signal_done(self) -> None:
        """Hand the done signal to the loop and wait until it has stopped.

        This is an unbuffered handoff: it returns only once the loop has left.
        If the loop was never started it waits indefinitely.

        Raises:
            MailerClosedError: If the channels are already closed.
            RuntimeError: If the done signal was already sent.
        """
        if self._closed:
            raise MailerClosedError()
        if self._done.is_set():
            raise RuntimeError("done signal already sent")
        self._done.set()
        self._wakeup.set()
        await self._stopped.wait()

    def close(self) -> None:
        """Close the message queue, the error queue and the done signal.

        Only the first call has an effect. Messages still queued at this point
        are dropped and logged.
        """
        if self._closed:
            return
        self._closed = True
        dropped = self.mailer_queue.qsize()
        if dropped:
            self.error_logger.warning("Closing mail queue with %d undelivered message(s)", dropped)
        unreported = self.error_queue.qsize()
        if unreported:
            self.error_logger.warning("Closing error queue with %d unreported error(s)", unreported)
        self._done.set()
        self.info_logger.debug("Mailer channels closed")
