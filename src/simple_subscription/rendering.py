# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Turn :class:`~simple_subscription.models.Message` values into MIME emails.

Bodies come either straight from the message or from a pair of Jinja2
templates in the configured templates directory:

- ``<name>.html.jinja``: HTML body (required when a template is named)
- ``<name>.plain.jinja``: plain text body (optional, falls back to ``body``)

The template context is the message ``data`` plus ``subject``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import mimetypes
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from .models import Attachment, Message

if TYPE_CHECKING:
    from .config_loader import MailSettings


class RenderError(ValueError):
    """Raised when a message body or attachment cannot be produced."""


class MessageRenderer:
    """Render message bodies and assemble ``EmailMessage`` objects.

    Attributes:
        settings: Static mail configuration (sender identity, domain, templates).
        env: Jinja2 environment loading from ``settings.templates_dir``.
    """

    def __init__(self, settings: MailSettings):
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(settings.templates_dir),
            autoescape=select_autoescape(enabled_extensions=("html.jinja",), default_for_string=False),
        )

    def render_bodies(self, message: Message) -> tuple[str, str | None]:
        """Return the ``(plain, html)`` bodies for a message.

        Raises:
            RenderError: If the named HTML template does not exist.
        """
        if not message.template:
            return message.body, message.html_body

        context = dict(message.data)
        context.setdefault("subject", message.subject)
        try:
            html = self.env.get_template(f"{message.template}.html.jinja").render(**context)
        except TemplateNotFound as exc:
            raise RenderError(f"template not found: {exc.name}") from exc
        try:
            plain = self.env.get_template(f"{message.template}.plain.jinja").render(**context)
        except TemplateNotFound:
            plain = message.body
        return plain, html

    async def load_attachment(self, attachment: Attachment) -> tuple[bytes, str, str]:
        """Read attachment bytes and resolve its MIME type.

        Returns:
            Tuple of (content, maintype, subtype).
        """
        if attachment.path is not None:
            try:
                content = await asyncio.to_thread(Path(attachment.path).read_bytes)
            except OSError as exc:
                raise RenderError(f"cannot read attachment {attachment.filename}: {exc}") from exc
        else:
            try:
                content = base64.b64decode(attachment.content or "", validate=True)
            except (binascii.Error, ValueError) as exc:
                raise RenderError(f"invalid base64 content for {attachment.filename}") from exc
        maintype, subtype = self.guess_mime(attachment)
        return content, maintype, subtype

    @staticmethod
    def guess_mime(attachment: Attachment) -> tuple[str, str]:
        if attachment.mime_type and "/" in attachment.mime_type:
            maintype, subtype = attachment.mime_type.split("/", 1)
            return maintype, subtype
        mime, _ = mimetypes.guess_type(attachment.filename)
        if not mime:
            return "application", "octet-stream"
        maintype, subtype = mime.split("/", 1)
        return maintype, subtype

    async def build(self, message: Message) -> EmailMessage:
        """Build the full MIME message, attachments included.

        Raises:
            RenderError: On missing templates or unreadable attachments.
        """
        plain, html = self.render_bodies(message)
        from_address = message.from_address or self.settings.from_address
        from_name = message.from_name or self.settings.from_name

        msg = EmailMessage()
        msg["From"] = formataddr((from_name, from_address)) if from_name else from_address
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.settings.domain)
        msg.set_content(plain or "")
        if html:
            msg.add_alternative(html, subtype="html")

        for attachment in message.attachments:
            content, maintype, subtype = await self.load_attachment(attachment)
            msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=attachment.filename)
        return msg
