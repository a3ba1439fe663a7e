import asyncio
import json

import pytest

from brokerhooks.core.config import Config
from brokerhooks.core.types import Alert, AlertSeverity, Endpoint, Reference
from brokerhooks.delivery.transport import TransportResponse
from brokerhooks.storage.memory import InMemoryStorage
from brokerhooks.webhooks.signature import format_signature_header, sign

INBOUND_SECRET = "whsec_test_secret"

# Scripted transport outcome that never answers within the per-attempt timeout
HANG = object()


class FakeTransport:
    """
    In-process HttpTransport.

    ``script`` maps a URL to a list of outcomes: an int status code, an
    exception instance to raise, or HANG. The last outcome repeats once the
    list is exhausted. Unscripted URLs answer 200.
    """

    def __init__(self, script=None, delays=None):
        self.script = {url: list(outcomes) for url, outcomes in (script or {}).items()}
        self.delays = delays or {}
        self.calls = []

    async def post(self, url, content, headers, timeout):
        self.calls.append(
            {"url": url, "content": content, "headers": dict(headers), "timeout": timeout}
        )
        if url in self.delays:
            await asyncio.sleep(self.delays[url])

        outcomes = self.script.get(url) or [200]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

        if outcome is HANG:
            await asyncio.sleep(60)
        if isinstance(outcome, BaseException):
            raise outcome
        return TransportResponse(status_code=outcome, reason="Scripted")

    def calls_to(self, url):
        return [c for c in self.calls if c["url"] == url]


class RecordingSleep:
    """Injected in place of asyncio.sleep so backoff is observable and instant."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def config():
    return Config(inbound_secret=INBOUND_SECRET, frontend_url="https://app.example.com")


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def tenant():
    return Reference(id="ws-1", name="Acme")


@pytest.fixture
def server():
    return Reference(id="srv-1", name="rabbit-prod")


def make_alert(alert_id="a-1", severity=AlertSeverity.WARNING, vhost="/", **overrides):
    fields = {
        "id": alert_id,
        "severity": severity,
        "category": "queue",
        "title": f"Queue depth high ({alert_id})",
        "description": "Messages are piling up",
        "source_type": "queue",
        "source_name": "orders",
        "timestamp": "2024-05-01T12:00:00.000Z",
        "server_id": "srv-1",
        "server_name": "rabbit-prod",
        "vhost": vhost,
        "details": {"current": 1200, "threshold": 1000},
    }
    fields.update(overrides)
    return Alert(**fields)


@pytest.fixture
def alerts():
    return [
        make_alert("a-1", AlertSeverity.CRITICAL),
        make_alert("a-2", AlertSeverity.WARNING),
        make_alert("a-3", AlertSeverity.INFO, vhost="billing"),
    ]


@pytest.fixture
def endpoint():
    return Endpoint(
        id="ep-1",
        url="https://hooks.example.com/a",
        secret="endpoint-secret",
        tenant_id="ws-1",
    )


def signed_request(event: dict, secret: str = INBOUND_SECRET):
    """Body and headers as the payment processor would send them."""
    body = json.dumps(event).encode("utf-8")
    headers = {"X-Webhook-Signature": format_signature_header(sign(body, secret))}
    return body, headers
