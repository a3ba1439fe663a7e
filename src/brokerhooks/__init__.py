"""
BrokerHooks - webhook subsystem for a message-broker monitoring service.

Two independent halves:

- Inbound: verify, deduplicate and apply payment-processor events.
- Outbound: sign and deliver alert notifications to tenant endpoints
  with bounded retries and concurrent fan-out.

Usage:
    >>> from brokerhooks import BrokerHooks
    >>>
    >>> async with BrokerHooks() as hooks:
    ...     response = await hooks.handle_webhook(body, headers)
    ...     results = await hooks.notify_tenant(tenant, server, alerts)
"""

from brokerhooks.core.config import Config
from brokerhooks.core.exceptions import (
    BrokerHooksError,
    ConfigurationError,
    HandlerError,
    InvalidSignatureError,
    NetworkError,
    StorageError,
    ValidationError,
)
from brokerhooks.core.logging import configure_logging, get_logger
from brokerhooks.core.types import (
    Alert,
    AlertSeverity,
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryResult,
    Endpoint,
    EndpointKind,
    InboundEvent,
    OutboundPayload,
    Reference,
)
from brokerhooks.delivery import (
    AlertNotifier,
    DeliveryEngine,
    EndpointStore,
    FanoutCoordinator,
    HttpxTransport,
    compose,
    serialize,
)
from brokerhooks.webhooks import (
    EventKind,
    HandlerRegistry,
    InboundEventStore,
    WebhookDispatcher,
    WebhookParser,
    WebhookReceiver,
    sign,
    verify,
)
from brokerhooks.client import BrokerHooks

__version__ = "0.1.0"

__all__ = [
    "Alert",
    "AlertNotifier",
    "AlertSeverity",
    "BrokerHooks",
    "BrokerHooksError",
    "Config",
    "ConfigurationError",
    "DeliveryAttempt",
    "DeliveryEngine",
    "DeliveryOutcome",
    "DeliveryResult",
    "Endpoint",
    "EndpointKind",
    "EndpointStore",
    "EventKind",
    "FanoutCoordinator",
    "HandlerError",
    "HandlerRegistry",
    "HttpxTransport",
    "InboundEvent",
    "InboundEventStore",
    "InvalidSignatureError",
    "NetworkError",
    "OutboundPayload",
    "Reference",
    "StorageError",
    "ValidationError",
    "WebhookDispatcher",
    "WebhookParser",
    "WebhookReceiver",
    "compose",
    "configure_logging",
    "get_logger",
    "serialize",
    "sign",
    "verify",
]
