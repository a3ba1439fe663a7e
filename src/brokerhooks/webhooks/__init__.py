"""
Inbound webhook ingestion: signature checks, deduplication and dispatch.
"""

from brokerhooks.webhooks.dispatcher import (
    DispatchResult,
    DispatchStage,
    DispatchStatus,
    InboundResponse,
    WebhookDispatcher,
    WebhookReceiver,
)
from brokerhooks.webhooks.handlers import EventKind, HandlerRegistry
from brokerhooks.webhooks.parser import WebhookParser
from brokerhooks.webhooks.signature import HmacSigner, generate_webhook_secret, sign, verify
from brokerhooks.webhooks.store import InboundEventStore

__all__ = [
    "DispatchResult",
    "DispatchStage",
    "DispatchStatus",
    "EventKind",
    "HandlerRegistry",
    "HmacSigner",
    "InboundEventStore",
    "InboundResponse",
    "WebhookDispatcher",
    "WebhookParser",
    "WebhookReceiver",
    "generate_webhook_secret",
    "sign",
    "verify",
]
