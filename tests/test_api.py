import pytest
from fastapi.testclient import TestClient

from simple_subscription.api import API_TOKEN_HEADER_NAME, create_app
from simple_subscription.config_loader import MailSettings
from simple_subscription.inflight import InFlightCounter
from simple_subscription.mailer import Mailer
from simple_subscription.prometheus import MailMetrics


API_TOKEN = "secret-token"


class DummyTransport:
    async def send(self, message):
        pass


@pytest.fixture
def mailer():
    return Mailer(MailSettings(queue_size=10), InFlightCounter(), transport=DummyTransport(), metrics=MailMetrics())


@pytest.fixture
def client(mailer):
    client = TestClient(create_app(mailer, api_token=API_TOKEN))
    client.headers.update({API_TOKEN_HEADER_NAME: API_TOKEN})
    return client


def test_health_needs_no_token(mailer):
    client = TestClient(create_app(mailer, api_token=API_TOKEN))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_rejects_missing_or_wrong_token(mailer):
    client = TestClient(create_app(mailer, api_token=API_TOKEN))
    response = client.get("/status")
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or missing API token"

    response = client.post("/mail", json={"to": "a@example.com"}, headers={API_TOKEN_HEADER_NAME: "nope"})
    assert response.status_code == 401
    assert mailer.mailer_queue.qsize() == 0


def test_no_token_configured_allows_requests(mailer):
    client = TestClient(create_app(mailer))
    assert client.get("/status").status_code == 200


def test_post_mail_enqueues_message(client, mailer):
    payload = {
        "to": "ann@example.com",
        "subject": "Welcome",
        "template": "mail",
        "data": {"message": "Thanks for subscribing"},
    }
    response = client.post("/mail", json=payload)

    assert response.status_code == 202
    assert response.json() == {"ok": True, "queued": 1}
    queued = mailer.mailer_queue.get_nowait()
    assert queued.to == "ann@example.com"
    assert queued.template == "mail"
    assert queued.data == {"message": "Thanks for subscribing"}
    assert mailer.wait.count == 1


def test_status_reports_queue_and_inflight(client, mailer):
    client.post("/mail", json={"to": "a@example.com", "subject": "1"})
    client.post("/mail", json={"to": "b@example.com", "subject": "2"})

    assert client.get("/status").json() == {"ok": True, "mailer": "idle", "queued": 2, "inflight": 2}


def test_metrics_endpoint(client, mailer):
    mailer.metrics.inc_sent()
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "sub_mail_sent_total 1.0" in response.text


def test_closed_mailer_returns_503(client, mailer):
    mailer.close()
    response = client.post("/mail", json={"to": "a@example.com"})
    assert response.status_code == 503
    assert response.json()["detail"] == "Mailer is shutting down"
    assert mailer.wait.count == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"subject": "no recipient"},
        {"to": "a@example.com", "template": "../etc/passwd"},
        {"to": "a@example.com", "unknown": True},
        {"to": "a@example.com", "attachments": [{"filename": "x.txt"}]},
    ],
)
def test_invalid_payload_is_rejected(client, mailer, payload):
    response = client.post("/mail", json=payload)
    assert response.status_code == 422
    assert "detail" in response.json()
    assert mailer.mailer_queue.qsize() == 0


def test_mail_rejected_once_done_signal_was_sent(client, mailer):
    mailer._done.set()
    response = client.post("/mail", json={"to": "a@example.com"})
    assert response.status_code == 503
    assert mailer.wait.count == 0
