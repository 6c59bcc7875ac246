# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outbound SMTP transport built from the static mail configuration.

Every delivery opens its own connection, authenticates when credentials
are configured, sends and quits. The encryption mode maps onto aiosmtplib
as follows:

- ``ssl``: direct TLS (``use_tls=True``), typically port 465
- ``tls``: STARTTLS upgrade (``start_tls=True``), typically port 587
- ``none``: plain SMTP

Example:
    Sending one message::

        transport = SMTPTransport(settings.mail)
        await transport.send(email_message)
"""

from __future__ import annotations

from email.message import EmailMessage
from typing import TYPE_CHECKING

import aiosmtplib

from .models import Encryption

if TYPE_CHECKING:
    from .config_loader import MailSettings


class SMTPTransport:
    """aiosmtplib-backed transport, one connection per message.

    Attributes:
        settings: Static mail configuration (host, port, encryption, credentials).
        timeout: Socket timeout passed to the SMTP client.
    """

    def __init__(self, settings: MailSettings, timeout: float = 10.0):
        self.settings = settings
        self.timeout = timeout

    def _client(self) -> aiosmtplib.SMTP:
        """Create an unconnected SMTP client for the configured encryption mode."""
        encryption = self.settings.encryption
        return aiosmtplib.SMTP(
            hostname=self.settings.host,
            port=self.settings.port,
            use_tls=encryption is Encryption.SSL,
            start_tls=encryption is Encryption.TLS,
            timeout=self.timeout,
        )

    async def send(self, message: EmailMessage) -> None:
        """Deliver a single message.

        Raises:
            aiosmtplib.SMTPException: If connection, login or delivery fails.
            OSError: On network errors.
        """
        smtp = self._client()
        await smtp.connect()
        try:
            if self.settings.username and self.settings.password:
                await smtp.login(self.settings.username, self.settings.password)
            await smtp.send_message(message)
        finally:
            try:
                await smtp.quit()
            except aiosmtplib.SMTPException:
                smtp.close()
