import json
from datetime import datetime, timezone

import pytest

from brokerhooks.core.exceptions import ValidationError
from brokerhooks.core.types import AlertSeverity
from brokerhooks.delivery.composer import ALERT_EVENT, PAYLOAD_VERSION, compose, serialize, summarize
from brokerhooks.webhooks.signature import sign
from conftest import make_alert

NOW = datetime(2024, 5, 1, 12, 30, 15, 678901, tzinfo=timezone.utc)


def test_summarize_counts_by_severity(alerts):
    assert summarize(alerts) == {"total": 3, "critical": 1, "warning": 1, "info": 1}


def test_summarize_empty_batch():
    assert summarize([]) == {"total": 0, "critical": 0, "warning": 0, "info": 0}


def test_compose_envelope(alerts, tenant, server):
    payload = compose(alerts, tenant, server, now=NOW)

    assert payload.version == PAYLOAD_VERSION
    assert payload.event == ALERT_EVENT
    assert payload.timestamp == "2024-05-01T12:30:15.678Z"
    assert payload.tenant == tenant
    assert payload.source == server
    assert payload.summary["total"] == 3


def test_compose_keeps_received_order(tenant, server):
    items = [make_alert(f"a-{i}", AlertSeverity.INFO) for i in (3, 1, 2)]
    payload = compose(iter(items), tenant, server, now=NOW)

    assert [item.id for item in payload.items] == ["a-3", "a-1", "a-2"]


def test_serialize_wire_format(alerts, tenant, server):
    body = serialize(compose(alerts, tenant, server, now=NOW))
    decoded = json.loads(body)

    assert body.startswith(b'{"version":"v1","event":"alert.notification","timestamp":')
    assert b" " not in body.split(b'"items"')[0]
    assert list(decoded) == ["version", "event", "timestamp", "tenant", "source", "items", "summary"]
    assert decoded["tenant"] == {"id": "ws-1", "name": "Acme"}
    assert decoded["items"][0]["serverId"] == "srv-1"
    assert decoded["items"][0]["source"] == {"type": "queue", "name": "orders"}


def test_equal_payloads_give_equal_bytes_and_signatures(alerts, tenant, server):
    first = serialize(compose(alerts, tenant, server, now=NOW))
    second = serialize(compose(list(alerts), tenant, server, now=NOW))

    assert first == second
    assert sign(first, "k") == sign(second, "k")


def test_compose_without_clock_is_deterministic(alerts, tenant, server):
    first = serialize(compose(alerts, tenant, server))
    second = serialize(compose(alerts, tenant, server))

    assert first == second
    assert sign(first, "k") == sign(second, "k")


def test_timestamp_defaults_to_newest_alert(tenant, server):
    items = [
        make_alert("a-1", timestamp="2024-05-01T12:05:00.000Z"),
        make_alert("a-2", timestamp="2024-05-01T12:00:00Z"),
        make_alert("a-3", timestamp="2024-05-01T14:01:30.250+02:00"),
    ]

    assert compose(items, tenant, server).timestamp == "2024-05-01T12:05:00.000Z"


def test_empty_batch_needs_explicit_clock(tenant, server):
    with pytest.raises(ValidationError):
        compose([], tenant, server)

    assert compose([], tenant, server, now=NOW).timestamp == "2024-05-01T12:30:15.678Z"


def test_unparseable_alert_timestamp_rejected(tenant, server):
    with pytest.raises(ValidationError, match="Invalid alert timestamp"):
        compose([make_alert(timestamp="yesterday")], tenant, server)


def test_vhost_omitted_when_absent(tenant, server):
    body = serialize(compose([make_alert(vhost=None)], tenant, server, now=NOW))
    assert "vhost" not in json.loads(body)["items"][0]
