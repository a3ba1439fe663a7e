"""
External state reconciled by inbound event handlers.

Subscription and customer records live in a ``StorageBackend``; customer
facing messages go through a ``Notifier``. Both are collaborators owned by
the surrounding application.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from brokerhooks.core.logging import get_logger
from brokerhooks.storage.base import StorageBackend


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    UNPAID = "unpaid"

    @classmethod
    def from_processor(cls, value: str | None) -> SubscriptionStatus:
        """Map a processor status string, folding unknown values to INCOMPLETE."""
        if value == "incomplete_expired":
            return cls.CANCELED
        try:
            return cls(value)
        except ValueError:
            return cls.INCOMPLETE


@dataclass(frozen=True)
class SubscriptionState:
    subscription_id: str
    customer_id: str | None
    plan: str
    status: SubscriptionStatus
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    trial_end: int | None = None
    # Markers recording which side effects have already been emitted
    last_paid_invoice: str | None = None
    last_failed_invoice: str | None = None
    action_required_invoice: str | None = None
    trial_notice_for: int | None = None

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["status"] = self.status.value
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SubscriptionState:
        data = {k: v for k, v in record.items() if not k.startswith("_")}
        data["status"] = SubscriptionStatus(data["status"])
        return cls(**data)


@dataclass(frozen=True)
class CustomerState:
    customer_id: str
    email: str | None = None
    name: str | None = None

    def to_record(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CustomerState:
        return cls(**{k: v for k, v in record.items() if not k.startswith("_")})


S = TypeVar("S", SubscriptionState, CustomerState)


class StateStore(Generic[S]):
    """Typed view over one storage collection."""

    def __init__(self, storage: StorageBackend, collection: str, state_type: type[S]) -> None:
        self._storage = storage
        self.collection = collection
        self._state_type = state_type

    async def get(self, key: str) -> S | None:
        record = await self._storage.get(self.collection, key)
        if record is None:
            return None
        return self._state_type.from_record(record)

    async def save(self, key: str, state: S) -> None:
        await self._storage.save(self.collection, key, state.to_record())


class SubscriptionStore(StateStore[SubscriptionState]):
    def __init__(self, storage: StorageBackend) -> None:
        super().__init__(storage, "subscriptions", SubscriptionState)


class CustomerStore(StateStore[CustomerState]):
    def __init__(self, storage: StorageBackend) -> None:
        super().__init__(storage, "customers", CustomerState)


@dataclass(frozen=True)
class Notice:
    """A customer-facing message triggered by a state transition."""

    kind: str
    subscription_id: str | None = None
    customer_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def send(self, notice: Notice) -> None: ...


class LoggingNotifier:
    """Default notifier; the e-mail layer is out of scope for this package."""

    def __init__(self) -> None:
        self._logger = get_logger("webhooks.notices")

    async def send(self, notice: Notice) -> None:
        self._logger.info(
            f"Notice {notice.kind} for subscription={notice.subscription_id} "
            f"customer={notice.customer_id}"
        )
