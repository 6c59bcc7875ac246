import pytest
from pydantic import ValidationError

from simple_subscription.models import Attachment, Encryption, Message, MessagePayload


def test_message_defaults():
    message = Message(to="ann@example.com")
    assert message.subject == ""
    assert message.body == ""
    assert message.html_body is None
    assert message.data == {}
    assert message.attachments == ()


def test_message_is_immutable():
    message = Message(to="ann@example.com", subject="Hi")
    with pytest.raises(ValidationError):
        message.subject = "Changed"


@pytest.mark.parametrize("template", ["welcome", "password-reset", "mail_v2"])
def test_template_names_accepted(template):
    assert Message(to="ann@example.com", template=template).template == template


@pytest.mark.parametrize("template", ["../secret", "a/b", "", "with space"])
def test_template_names_rejected(template):
    with pytest.raises(ValidationError):
        Message(to="ann@example.com", template=template)


def test_attachment_requires_single_source():
    assert Attachment(filename="a.txt", content="aGk=").content == "aGk="
    assert Attachment(filename="a.txt", path="/tmp/a.txt").path == "/tmp/a.txt"
    with pytest.raises(ValidationError):
        Attachment(filename="a.txt")
    with pytest.raises(ValidationError):
        Attachment(filename="a.txt", path="/tmp/a.txt", content="aGk=")


def test_payload_converts_to_message():
    payload = MessagePayload(
        to="ann@example.com",
        subject="Hi",
        attachments=[{"filename": "a.txt", "content": "aGk="}],
    )
    message = payload.to_message()
    assert type(message) is Message
    assert message.subject == "Hi"
    assert message.attachments[0].filename == "a.txt"


def test_encryption_values():
    assert Encryption("ssl") is Encryption.SSL
    assert Encryption.TLS.value == "tls"
    with pytest.raises(ValueError):
        Encryption("starttls")
