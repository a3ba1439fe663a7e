"""
Inbound event log keyed by processor event id.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from brokerhooks.core.exceptions import StorageError
from brokerhooks.core.logging import get_logger
from brokerhooks.core.types import InboundEvent
from brokerhooks.storage.base import StorageBackend

EVENTS_COLLECTION = "inbound_events"


@contextmanager
def _storage_errors(operation: str, event_id: str) -> Iterator[None]:
    """Surface any backend failure as StorageError, whatever backend is plugged in."""
    try:
        yield
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(
            f"Event log {operation} failed: {e}",
            details={"collection": EVENTS_COLLECTION, "event_id": event_id},
        ) from e


class InboundEventStore:
    """
    Records every delivery from the payment processor.

    Duplicate detection relies solely on the backend's per-key atomic upsert;
    no lock is held here.
    """

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage
        self._logger = get_logger("webhooks.store")

    async def record_receipt(self, event: InboundEvent) -> tuple[InboundEvent, bool]:
        """
        Upsert ``event`` by id.

        A redelivery always resets ``processed`` to False, whatever the prior
        outcome, so the processor's resend gets a fresh processing attempt.

        Returns:
            (stored event, created)

        Raises:
            StorageError: The backend failed.
        """
        with _storage_errors("upsert", event.id):
            record, created = await self._storage.upsert(
                EVENTS_COLLECTION,
                event.id,
                create=event.to_record(),
                update={"processed": False, "type": event.type},
            )
        if not created:
            self._logger.info(f"Redelivery of event {event.id} ({event.type}); reprocessing")

        stored = InboundEvent.from_record(record)
        stored.data = event.data
        return stored, created

    async def mark_processed(self, event_id: str) -> bool:
        with _storage_errors("update", event_id):
            return await self._storage.update(EVENTS_COLLECTION, event_id, {"processed": True})

    async def get(self, event_id: str) -> InboundEvent | None:
        with _storage_errors("get", event_id):
            record = await self._storage.get(EVENTS_COLLECTION, event_id)
        if record is None:
            return None
        return InboundEvent.from_record(record)
