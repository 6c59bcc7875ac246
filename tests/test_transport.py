from email.message import EmailMessage

import pytest

from simple_subscription.config_loader import MailSettings
from simple_subscription.models import Encryption
from simple_subscription.transport import SMTPTransport


class DummySMTP:
    def __init__(self, hostname, port, start_tls=None, use_tls=False, timeout=None):
        self.hostname = hostname
        self.port = port
        self.start_tls = start_tls
        self.use_tls = use_tls
        self.timeout = timeout
        self.login_credentials = None
        self.connected = False
        self.closed = False
        self.sent = []
        self.raise_on_send: Exception | None = None

    async def connect(self):
        self.connected = True

    async def login(self, user, password):
        self.login_credentials = (user, password)

    async def send_message(self, message):
        if self.raise_on_send:
            raise self.raise_on_send
        self.sent.append(message)

    async def quit(self):
        self.closed = True

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def patch_aiosmtplib(monkeypatch):
    created = []

    def factory(**kwargs):
        smtp = DummySMTP(**kwargs)
        created.append(smtp)
        return smtp

    monkeypatch.setattr("simple_subscription.transport.aiosmtplib.SMTP", factory)
    return created


def make_email() -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = "info@example.com"
    msg["To"] = "user@example.com"
    msg["Subject"] = "Hi"
    msg.set_content("body")
    return msg


@pytest.mark.asyncio
async def test_plain_connection_without_credentials(patch_aiosmtplib):
    transport = SMTPTransport(MailSettings(host="localhost", port=1025))
    email_msg = make_email()
    await transport.send(email_msg)

    smtp = patch_aiosmtplib[0]
    assert (smtp.hostname, smtp.port) == ("localhost", 1025)
    assert smtp.use_tls is False
    assert smtp.start_tls is False
    assert smtp.login_credentials is None
    assert smtp.sent == [email_msg]
    assert smtp.closed is True


@pytest.mark.asyncio
async def test_ssl_uses_implicit_tls_and_logs_in(patch_aiosmtplib):
    settings = MailSettings(host="smtp.secure", port=465, encryption=Encryption.SSL, username="u", password="p")
    await SMTPTransport(settings).send(make_email())

    smtp = patch_aiosmtplib[0]
    assert smtp.use_tls is True
    assert smtp.start_tls is False
    assert smtp.login_credentials == ("u", "p")


@pytest.mark.asyncio
async def test_tls_uses_starttls(patch_aiosmtplib):
    settings = MailSettings(host="smtp.secure", port=587, encryption=Encryption.TLS)
    await SMTPTransport(settings).send(make_email())

    smtp = patch_aiosmtplib[0]
    assert smtp.use_tls is False
    assert smtp.start_tls is True


@pytest.mark.asyncio
async def test_each_send_opens_its_own_connection(patch_aiosmtplib):
    transport = SMTPTransport(MailSettings())
    await transport.send(make_email())
    await transport.send(make_email())
    assert len(patch_aiosmtplib) == 2


@pytest.mark.asyncio
async def test_connection_is_closed_when_send_fails(monkeypatch, patch_aiosmtplib):
    transport = SMTPTransport(MailSettings())
    original = transport._client

    def failing_client():
        smtp = original()
        smtp.raise_on_send = ConnectionResetError("reset by peer")
        return smtp

    monkeypatch.setattr(transport, "_client", failing_client)

    with pytest.raises(ConnectionResetError):
        await transport.send(make_email())
    assert patch_aiosmtplib[0].closed is True
