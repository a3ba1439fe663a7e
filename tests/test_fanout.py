"""
Tests for concurrent fan-out and tenant-level alert notification.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from brokerhooks.core.config import Config
from brokerhooks.core.types import DeliveryOutcome, DeliveryResult, Endpoint, EndpointKind
from brokerhooks.delivery.engine import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    VERSION_HEADER,
    DeliveryEngine,
)
from brokerhooks.delivery.fanout import FanoutCoordinator
from brokerhooks.delivery.notifier import AlertNotifier, EndpointStore
from brokerhooks.webhooks.signature import verify
from conftest import HANG, INBOUND_SECRET, FakeTransport

GOOD = Endpoint(id="ep-good", url="https://good.example.com/hook", secret="s1", tenant_id="ws-1")
BAD = Endpoint(id="ep-bad", url="https://bad.example.com/hook", secret="s2", tenant_id="ws-1")
OFF = Endpoint(id="ep-off", url="https://off.example.com/hook", enabled=False, tenant_id="ws-1")
SLACK = Endpoint(
    id="ep-slack",
    url="https://hooks.slack.com/services/T/B/X",
    tenant_id="ws-1",
    kind=EndpointKind.SLACK,
)


@pytest.fixture
def make_coordinator(config, sleep):
    def factory(transport):
        engine = DeliveryEngine(transport, config, sleep=sleep)
        return FanoutCoordinator(engine, frontend_url=config.frontend_url)

    return factory


@pytest.mark.asyncio
async def test_failures_are_isolated_per_endpoint(make_coordinator, alerts, tenant, server):
    transport = FakeTransport({BAD.url: [500]})

    results = await make_coordinator(transport).notify([GOOD, BAD, OFF], alerts, tenant, server)

    assert [r.endpoint_id for r in results] == ["ep-good", "ep-bad"]
    good, bad = results
    assert good.success is True
    assert good.attempts == 1
    assert bad.success is False
    assert bad.attempts == 4
    assert len(transport.calls_to(GOOD.url)) == 1
    assert transport.calls_to(OFF.url) == []


@pytest.mark.asyncio
async def test_every_endpoint_gets_the_same_payload(make_coordinator, alerts, tenant, server):
    transport = FakeTransport()

    await make_coordinator(transport).notify([GOOD, BAD], alerts, tenant, server)

    good_call, bad_call = transport.calls_to(GOOD.url)[0], transport.calls_to(BAD.url)[0]
    assert good_call["content"] == bad_call["content"]
    assert verify(good_call["content"], good_call["headers"][SIGNATURE_HEADER], "s1")
    assert verify(bad_call["content"], bad_call["headers"][SIGNATURE_HEADER], "s2")


@pytest.mark.asyncio
async def test_slack_endpoints_get_rendered_message(make_coordinator, alerts, tenant, server):
    transport = FakeTransport()

    results = await make_coordinator(transport).notify([GOOD, SLACK], alerts, tenant, server)

    assert all(r.success for r in results)
    webhook_body = json.loads(transport.calls_to(GOOD.url)[0]["content"])
    slack_call = transport.calls_to(SLACK.url)[0]
    slack_body = json.loads(slack_call["content"])
    assert webhook_body["event"] == "alert.notification"
    assert "attachments" in slack_body
    assert SIGNATURE_HEADER not in slack_call["headers"]


@pytest.mark.asyncio
async def test_no_enabled_endpoints(make_coordinator, alerts, tenant, server):
    transport = FakeTransport()

    assert await make_coordinator(transport).notify([OFF], alerts, tenant, server) == []
    assert transport.calls == []


@pytest.mark.asyncio
async def test_raising_chain_becomes_failed_result(alerts, tenant, server):
    async def deliver(endpoint, body, headers=None):
        if endpoint.id == "ep-bad":
            raise RuntimeError("engine exploded")
        return DeliveryResult(endpoint.id, True, 1, DeliveryOutcome.SUCCESS, 200)

    engine = MagicMock()
    engine.deliver = AsyncMock(side_effect=deliver)

    results = await FanoutCoordinator(engine).notify([GOOD, BAD], alerts, tenant, server)

    assert results[0].success is True
    assert results[1].success is False
    assert results[1].error == "engine exploded"
    assert engine.deliver.await_count == 2


@pytest.mark.asyncio
async def test_iter_results_yields_fastest_first(make_coordinator, alerts, tenant, server):
    transport = FakeTransport(delays={GOOD.url: 0.05})
    coordinator = make_coordinator(transport)

    seen = [r.endpoint_id async for r in coordinator.iter_results([GOOD, BAD], alerts, tenant, server)]

    assert seen == ["ep-bad", "ep-good"]


@pytest.mark.asyncio
async def test_hung_endpoint_does_not_hold_back_fast_ones(sleep, alerts, tenant, server):
    hung = Endpoint(id="ep-hung", url="https://hung.example.com/hook", secret="s3", tenant_id="ws-1")
    transport = FakeTransport({hung.url: [HANG]})
    config = Config(inbound_secret=INBOUND_SECRET, request_timeout=0.05)
    coordinator = FanoutCoordinator(DeliveryEngine(transport, config, sleep=sleep))

    seen = [r async for r in coordinator.iter_results([hung, GOOD, BAD], alerts, tenant, server)]

    assert {r.endpoint_id for r in seen[:2]} == {"ep-good", "ep-bad"}
    assert all(r.success for r in seen[:2])
    last = seen[2]
    assert last.endpoint_id == "ep-hung"
    assert last.success is False
    assert last.outcome == DeliveryOutcome.TRANSIENT_FAILURE
    assert last.attempts == 4
    assert sum(r.success for r in seen) == 2
    assert len(transport.calls_to(hung.url)) == 4


@pytest.mark.asyncio
async def test_headers_describe_the_body_each_endpoint_receives(make_coordinator, alerts, tenant, server):
    v2 = Endpoint(
        id="ep-v2", url="https://v2.example.com/hook", secret="s4", tenant_id="ws-1", payload_version="v2"
    )
    transport = FakeTransport()

    await make_coordinator(transport).notify([GOOD, v2], alerts, tenant, server)

    for endpoint, version in ((GOOD, "v1"), (v2, "v2")):
        call = transport.calls_to(endpoint.url)[0]
        body = json.loads(call["content"])
        assert body["version"] == version
        assert call["headers"][VERSION_HEADER] == version
        assert call["headers"][TIMESTAMP_HEADER] == body["timestamp"]
        assert verify(call["content"], call["headers"][SIGNATURE_HEADER], endpoint.secret)


class TestAlertNotifier:
    @pytest.fixture
    def endpoints(self, storage):
        return EndpointStore(storage)

    @pytest.mark.asyncio
    async def test_list_enabled_filters_by_tenant(self, endpoints):
        other = Endpoint(id="ep-other", url="https://other.example.com", tenant_id="ws-2")
        for endpoint in (GOOD, BAD, OFF, other):
            await endpoints.save(endpoint)

        listed = await endpoints.list_enabled("ws-1")

        assert sorted(e.id for e in listed) == ["ep-bad", "ep-good"]
        assert all(isinstance(e, Endpoint) for e in listed)

    @pytest.mark.asyncio
    async def test_notify_tenant_fans_out_to_enabled_endpoints(self, endpoints, make_coordinator, alerts, tenant, server):
        for endpoint in (GOOD, BAD, OFF):
            await endpoints.save(endpoint)
        transport = FakeTransport({BAD.url: [404]})
        notifier = AlertNotifier(endpoints, make_coordinator(transport))

        results = await notifier.notify_tenant(tenant, server, alerts)

        by_id = {r.endpoint_id: r for r in results}
        assert set(by_id) == {"ep-good", "ep-bad"}
        assert by_id["ep-good"].success is True
        assert by_id["ep-bad"].outcome == DeliveryOutcome.PERMANENT_FAILURE

    @pytest.mark.asyncio
    async def test_empty_batch_sends_nothing(self, endpoints, make_coordinator, tenant, server):
        await endpoints.save(GOOD)
        transport = FakeTransport()

        assert await AlertNotifier(endpoints, make_coordinator(transport)).notify_tenant(tenant, server, []) == []
        assert transport.calls == []
