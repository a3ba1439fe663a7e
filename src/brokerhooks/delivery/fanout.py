"""
Concurrent fan-out of one alert notification to every registered endpoint.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from datetime import datetime

from brokerhooks.core.logging import get_logger
from brokerhooks.core.types import (
    Alert,
    DeliveryOutcome,
    DeliveryResult,
    Endpoint,
    EndpointKind,
    OutboundPayload,
    Reference,
)
from brokerhooks.delivery.composer import compose, serialize
from brokerhooks.delivery.engine import DeliveryEngine
from brokerhooks.delivery.slack import serialize_message


def _failed(endpoint_id: str, error: BaseException) -> DeliveryResult:
    return DeliveryResult(
        endpoint_id=endpoint_id,
        success=False,
        attempts=0,
        outcome=DeliveryOutcome.PERMANENT_FAILURE,
        error=str(error) or type(error).__name__,
    )


class FanoutCoordinator:
    """
    Runs one delivery chain per enabled endpoint, concurrently.

    Chains share nothing but the immutable serialized payload. A chain that
    raises is converted into a failed result for its own endpoint and never
    cancels or delays its siblings.
    """

    def __init__(self, engine: DeliveryEngine, frontend_url: str | None = None) -> None:
        self._engine = engine
        self._frontend_url = frontend_url
        self._logger = get_logger("delivery.fanout")

    def _body(self, payload: OutboundPayload, kind: EndpointKind) -> bytes:
        if kind == EndpointKind.SLACK:
            return serialize_message(payload, self._frontend_url)
        return serialize(payload)

    async def _deliver_one(self, endpoint: Endpoint, body: bytes, payload: OutboundPayload) -> DeliveryResult:
        try:
            headers = self._engine.build_headers(
                endpoint,
                body,
                event=payload.event,
                timestamp=payload.timestamp,
                version=payload.version,
            )
            return await self._engine.deliver(endpoint, body, headers=headers)
        except Exception as e:
            self._logger.exception(f"Delivery chain for endpoint {endpoint.id} raised")
            return _failed(endpoint.id, e)

    def _prepare(
        self,
        endpoints: Iterable[Endpoint],
        items: Iterable[Alert],
        tenant: Reference,
        source: Reference,
        now: datetime | None,
    ) -> list[tuple[Endpoint, bytes, OutboundPayload]]:
        """
        Compose once per payload version and serialize once per wire format.

        Every endpoint sharing a version and kind receives the same bytes.
        """
        active = [e for e in endpoints if e.enabled]
        batch = tuple(items)
        if not active or not batch:
            return []

        payloads: dict[str, OutboundPayload] = {}
        bodies: dict[tuple[str, EndpointKind], bytes] = {}
        jobs = []
        for endpoint in active:
            version = endpoint.payload_version
            if version not in payloads:
                payloads[version] = compose(batch, tenant, source, now=now, version=version)
            payload = payloads[version]
            if (version, endpoint.kind) not in bodies:
                bodies[(version, endpoint.kind)] = self._body(payload, endpoint.kind)
            jobs.append((endpoint, bodies[(version, endpoint.kind)], payload))
        return jobs

    async def notify(
        self,
        endpoints: Iterable[Endpoint],
        items: Iterable[Alert],
        tenant: Reference,
        source: Reference,
        now: datetime | None = None,
    ) -> list[DeliveryResult]:
        """
        Deliver one composed payload to all enabled endpoints.

        Returns:
            One result per enabled endpoint, in endpoint order.
        """
        jobs = self._prepare(endpoints, items, tenant, source, now)
        if not jobs:
            return []

        outcomes = await asyncio.gather(
            *(self._deliver_one(endpoint, body, payload) for endpoint, body, payload in jobs),
            return_exceptions=True,
        )

        results: list[DeliveryResult] = []
        for (endpoint, _, _), outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                results.append(_failed(endpoint.id, outcome))
            else:
                results.append(outcome)

        succeeded = sum(1 for r in results if r.success)
        self._logger.info(
            f"Fan-out to {len(results)} endpoint(s): {succeeded} succeeded, "
            f"{len(results) - succeeded} failed"
        )
        return results

    async def iter_results(
        self,
        endpoints: Iterable[Endpoint],
        items: Iterable[Alert],
        tenant: Reference,
        source: Reference,
        now: datetime | None = None,
    ) -> AsyncIterator[DeliveryResult]:
        """Yield results as each endpoint's chain finishes, fastest first."""
        jobs = self._prepare(endpoints, items, tenant, source, now)
        tasks = [
            asyncio.create_task(self._deliver_one(endpoint, body, payload))
            for endpoint, body, payload in jobs
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
