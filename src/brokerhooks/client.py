"""
BrokerHooks client: one object wiring both halves of the subsystem from Config.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from brokerhooks.core.config import Config
from brokerhooks.core.logging import configure_logging, get_logger
from brokerhooks.core.types import Alert, DeliveryResult, Endpoint, Reference
from brokerhooks.delivery.engine import DeliveryEngine
from brokerhooks.delivery.fanout import FanoutCoordinator
from brokerhooks.delivery.notifier import AlertNotifier, EndpointStore
from brokerhooks.delivery.transport import HttpTransport, HttpxTransport
from brokerhooks.storage import RedisStorage, StorageBackend, get_storage
from brokerhooks.webhooks.dispatcher import InboundResponse, WebhookDispatcher, WebhookReceiver
from brokerhooks.webhooks.handlers import HandlerRegistry
from brokerhooks.webhooks.parser import WebhookParser
from brokerhooks.webhooks.state import CustomerStore, Notifier, SubscriptionStore
from brokerhooks.webhooks.store import InboundEventStore


def _build_storage(config: Config) -> StorageBackend:
    if config.storage_backend == "redis" and config.redis_url:
        return get_storage("redis", redis_url=config.redis_url)
    return get_storage(config.storage_backend)


class BrokerHooks:
    """
    Entry point for the webhook subsystem.

    Usage:
        >>> async with BrokerHooks() as hooks:
        ...     response = await hooks.handle_webhook(body, headers)
        ...     results = await hooks.notify_tenant(tenant, server, alerts)
    """

    def __init__(
        self,
        config: Config | None = None,
        storage: StorageBackend | None = None,
        transport: HttpTransport | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Configuration (or loaded from BROKERHOOKS_* env)
            storage: Storage backend (or built from config.storage_backend)
            transport: Outbound HTTP transport (default: HttpxTransport)
            notifier: Customer notice sink for inbound handlers (default: logs)
        """
        self._config = config or Config.from_env()

        configure_logging(level=self._config.log_level)
        self._logger = get_logger("client")

        self._owns_storage = storage is None
        self._storage = storage or _build_storage(self._config)
        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport()

        self._logger.info(
            f"Initializing BrokerHooks (env={self._config.env}, "
            f"storage={self._config.storage_backend}, secret={self._config.masked_secret()})"
        )

        # Inbound
        self._parser = WebhookParser(
            secret=self._config.inbound_secret,
            signature_header=self._config.signature_header,
        )
        self._events = InboundEventStore(self._storage)
        self._registry = HandlerRegistry(
            SubscriptionStore(self._storage), CustomerStore(self._storage), notifier
        )
        self._dispatcher = WebhookDispatcher(self._parser, self._events, self._registry)
        self._receiver = WebhookReceiver(self._dispatcher)

        # Outbound
        self._engine = DeliveryEngine(self._transport, self._config)
        self._fanout = FanoutCoordinator(self._engine, frontend_url=self._config.frontend_url)
        self._endpoints = EndpointStore(self._storage)
        self._alerts = AlertNotifier(self._endpoints, self._fanout)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def receiver(self) -> WebhookReceiver:
        """Inbound request adapter for the HTTP routing layer."""
        return self._receiver

    @property
    def dispatcher(self) -> WebhookDispatcher:
        return self._dispatcher

    @property
    def fanout(self) -> FanoutCoordinator:
        return self._fanout

    @property
    def endpoints(self) -> EndpointStore:
        return self._endpoints

    async def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> InboundResponse:
        """Verify and apply one payment-processor request."""
        return await self._receiver.handle(body, headers)

    async def register_endpoint(self, endpoint: Endpoint) -> None:
        await self._endpoints.save(endpoint)

    async def notify_tenant(
        self,
        tenant: Reference,
        source: Reference,
        items: Sequence[Alert],
        now: datetime | None = None,
    ) -> list[DeliveryResult]:
        """Deliver an alert batch to every enabled endpoint of ``tenant``."""
        return await self._alerts.notify_tenant(tenant, source, items, now=now)

    async def close(self) -> None:
        """Release the HTTP client and storage connection this client created."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()
        if self._owns_storage and isinstance(self._storage, RedisStorage):
            await self._storage.close()

    async def __aenter__(self) -> BrokerHooks:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
