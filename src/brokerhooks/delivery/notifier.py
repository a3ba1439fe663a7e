"""
Tenant-level alert notification: endpoint lookup plus fan-out.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from brokerhooks.core.logging import get_logger
from brokerhooks.core.types import Alert, DeliveryResult, Endpoint, Reference
from brokerhooks.delivery.fanout import FanoutCoordinator
from brokerhooks.storage.base import StorageBackend

ENDPOINTS_COLLECTION = "endpoints"


class EndpointStore:
    """Read side of the endpoint registry managed by the CRUD layer."""

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    async def save(self, endpoint: Endpoint) -> None:
        await self._storage.save(ENDPOINTS_COLLECTION, endpoint.id, endpoint.to_record())

    async def list_enabled(self, tenant_id: str) -> list[Endpoint]:
        records = await self._storage.query(
            ENDPOINTS_COLLECTION, filters={"tenant_id": tenant_id, "enabled": True}
        )
        return [Endpoint.from_record(r) for r in records]


class AlertNotifier:
    """Sends a batch of alerts to every enabled endpoint of a tenant."""

    def __init__(self, endpoints: EndpointStore, fanout: FanoutCoordinator) -> None:
        self._endpoints = endpoints
        self._fanout = fanout
        self._logger = get_logger("delivery.notifier")

    async def notify_tenant(
        self,
        tenant: Reference,
        source: Reference,
        items: Sequence[Alert],
        now: datetime | None = None,
    ) -> list[DeliveryResult]:
        if not items:
            return []

        endpoints = await self._endpoints.list_enabled(tenant.id)
        if not endpoints:
            self._logger.debug(f"No enabled endpoints for tenant {tenant.id}; skipping")
            return []

        results = await self._fanout.notify(endpoints, items, tenant, source, now=now)

        failures = [r for r in results if not r.success]
        if failures:
            self._logger.warning(
                f"Alert notification failed for {len(failures)} endpoint(s) of tenant {tenant.id}: "
                + ", ".join(f"{r.endpoint_id} ({r.error})" for r in failures)
            )
        return results
