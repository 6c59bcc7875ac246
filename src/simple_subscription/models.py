# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models for the mail dispatch layer.

This module defines the data models used throughout the application for
validation, serialization, and type safety.

Models:
    - Encryption: SMTP connection security mode
    - Attachment: File attached to an outbound message
    - Message: One outbound email, immutable once enqueued
    - MessagePayload: HTTP body accepted by ``POST /mail``
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Encryption(str, Enum):
    """Connection security for the outbound SMTP transport.

    Attributes:
        NONE: Plain SMTP.
        SSL: Implicit TLS from the first byte (usually port 465).
        TLS: Plain connection upgraded with STARTTLS (usually port 587).
    """

    NONE = "none"
    SSL = "ssl"
    TLS = "tls"


class Attachment(BaseModel):
    """A file attached to a message.

    Exactly one of ``path`` (read from disk at send time) or ``content``
    (base64-encoded bytes) must be set.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    filename: Annotated[str, Field(min_length=1, description="Name shown to the recipient")]
    path: Annotated[str | None, Field(default=None, description="Filesystem path of the file")]
    content: Annotated[str | None, Field(default=None, description="Base64-encoded file content")]
    mime_type: Annotated[
        str | None,
        Field(default=None, description="Explicit MIME type, guessed from filename when omitted"),
    ]

    @model_validator(mode="after")
    def exactly_one_source(self) -> Attachment:
        """Validate that the attachment has a single data source."""
        if (self.path is None) == (self.content is None):
            raise ValueError("exactly one of 'path' or 'content' is required")
        return self


class Message(BaseModel):
    """One outbound email unit of work.

    The body is either given directly (``body`` and optional ``html_body``)
    or rendered from ``template`` with ``data`` as context. Sender fields left
    empty are filled from the mailer's static configuration at send time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    to: Annotated[str, Field(min_length=3, description="Recipient address")]
    subject: Annotated[str, Field(default="", description="Subject line")]
    body: Annotated[str, Field(default="", description="Plain text body")]
    html_body: Annotated[str | None, Field(default=None, description="HTML body")]
    template: Annotated[
        str | None,
        Field(default=None, pattern=r"^[a-zA-Z0-9_-]+$", description="Template name rendered with data"),
    ]
    data: Annotated[dict[str, Any], Field(default_factory=dict, description="Template context")]
    attachments: Annotated[tuple[Attachment, ...], Field(default=(), description="Files to attach")]
    from_address: Annotated[str | None, Field(default=None, description="Sender address override")]
    from_name: Annotated[str | None, Field(default=None, description="Sender display name override")]


class MessagePayload(Message):
    """Body accepted by ``POST /mail``; same fields as :class:`Message`."""

    def to_message(self) -> Message:
        return Message.model_validate(self.model_dump())
