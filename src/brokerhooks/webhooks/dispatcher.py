"""
Inbound webhook verification and dispatch.

Each request walks ``received -> verified -> deduplicated -> dispatched``
and ends ``processed`` or ``failed``. Handler failures are surfaced to the
caller on purpose: the payment processor redelivers on any non-2xx
response, which is the retry mechanism for this half of the subsystem.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from brokerhooks.core.exceptions import (
    BrokerHooksError,
    HandlerError,
    InvalidSignatureError,
    StorageError,
    ValidationError,
)
from brokerhooks.core.logging import get_logger
from brokerhooks.webhooks.handlers import EventKind, HandlerRegistry
from brokerhooks.webhooks.parser import WebhookParser
from brokerhooks.webhooks.store import InboundEventStore


class DispatchStage(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    DEDUPLICATED = "deduplicated"
    DISPATCHED = "dispatched"
    PROCESSED = "processed"
    FAILED = "failed"


class DispatchStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"  # no handler for this event type


@dataclass(frozen=True)
class DispatchResult:
    event_id: str
    event_type: str
    status: DispatchStatus
    duplicate: bool = False
    changed: bool = False


class WebhookDispatcher:
    """
    Verifies, deduplicates and routes processor events to handlers.

    Every error raised out of ``dispatch`` carries ``details["stage"]``: the
    last stage the request completed, or ``failed`` when the handler raised.
    """

    def __init__(
        self,
        parser: WebhookParser,
        events: InboundEventStore,
        registry: HandlerRegistry,
    ) -> None:
        self._parser = parser
        self._events = events
        self._registry = registry
        self._logger = get_logger("webhooks.dispatcher")

    async def dispatch(self, body: bytes, headers: Mapping[str, str]) -> DispatchResult:
        """
        Process one inbound request.

        Raises:
            InvalidSignatureError: Signature missing or wrong; nothing was stored.
            ValidationError: Body is not a well-formed event; nothing was stored.
            StorageError: The event log could not be read or written.
            HandlerError: The handler raised; the event stays unprocessed.
        """
        stage = DispatchStage.RECEIVED
        try:
            self._parser.verify_signature(body, headers)
            stage = DispatchStage.VERIFIED
            event = self._parser.parse(body)

            event, created = await self._events.record_receipt(event)
            stage = DispatchStage.DEDUPLICATED

            kind = EventKind.parse(event.type)
            if kind is EventKind.UNHANDLED:
                self._logger.info(f"Ignoring unhandled event type {event.type} ({event.id})")
                await self._events.mark_processed(event.id)
                return DispatchResult(
                    event_id=event.id,
                    event_type=event.type,
                    status=DispatchStatus.IGNORED,
                    duplicate=not created,
                )

            changed = await self._apply(kind, event.id, event.type, event.data)
            stage = DispatchStage.DISPATCHED
            await self._events.mark_processed(event.id)
        except BrokerHooksError as e:
            e.details.setdefault("stage", stage.value)
            if isinstance(e, ValidationError):
                self._logger.warning(f"Rejected webhook at stage {stage.value}: {e}")
            raise

        self._logger.info(
            f"Event {event.id} ({event.type}) {DispatchStage.PROCESSED.value}; changed={changed}"
        )
        return DispatchResult(
            event_id=event.id,
            event_type=event.type,
            status=DispatchStatus.PROCESSED,
            duplicate=not created,
            changed=changed,
        )

    async def _apply(self, kind: EventKind, event_id: str, event_type: str, data: dict) -> bool:
        try:
            return await self._registry.apply(kind, data)
        except Exception as e:
            self._logger.exception(f"Handler for {event_type} failed on event {event_id}")
            raise HandlerError(
                f"Handler failed: {e}",
                event_id=event_id,
                event_type=event_type,
                details={"stage": DispatchStage.FAILED.value},
            ) from e


@dataclass(frozen=True)
class InboundResponse:
    status_code: int
    body: dict


class WebhookReceiver:
    """
    Maps dispatch outcomes onto HTTP status codes for the routing layer.

    Never raises: 200 for processed or ignored events, 400 for signature or
    payload errors, 500 for handler, storage or unexpected failures.
    """

    def __init__(self, dispatcher: WebhookDispatcher) -> None:
        self._dispatcher = dispatcher
        self._logger = get_logger("webhooks.receiver")

    async def handle(self, body: bytes, headers: Mapping[str, str]) -> InboundResponse:
        try:
            result = await self._dispatcher.dispatch(body, headers)
        except InvalidSignatureError:
            return InboundResponse(400, {"error": "Invalid signature"})
        except ValidationError as e:
            return InboundResponse(400, {"error": e.message})
        except HandlerError as e:
            return InboundResponse(500, {"error": "Webhook handler failed", "event_id": e.event_id})
        except StorageError as e:
            self._logger.error(f"Event log unavailable: {e}")
            return InboundResponse(500, {"error": "Storage unavailable"})
        except BrokerHooksError as e:
            self._logger.error(f"Webhook processing error: {e}")
            return InboundResponse(500, {"error": "Webhook processing failed"})
        except Exception:
            self._logger.exception("Unexpected error while processing webhook")
            return InboundResponse(500, {"error": "Webhook processing failed"})

        return InboundResponse(
            200,
            {"received": True, "event_id": result.event_id, "status": result.status.value},
        )
