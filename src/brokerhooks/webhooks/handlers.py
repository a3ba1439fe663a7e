"""
Event handler registry for payment processor notifications.

Every handler is split into pure functions:

- ``key(data)`` picks the state record the event targets,
- ``reduce(data, current)`` returns the new state (or None when the event
  cannot be applied),
- ``notices(old, new, data)`` lists the side effects owed for the
  transition from ``old`` to ``new``.

``HandlerRegistry.apply`` persists only when the state actually changed and
emits notices only in that case, so a redelivered event, or a second event
describing the same target state, converges without duplicate side effects.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from brokerhooks.core.exceptions import ConfigurationError
from brokerhooks.core.logging import get_logger
from brokerhooks.webhooks.state import (
    CustomerState,
    CustomerStore,
    LoggingNotifier,
    Notice,
    Notifier,
    StateStore,
    SubscriptionState,
    SubscriptionStatus,
    SubscriptionStore,
)

logger = get_logger("webhooks.handlers")


class EventKind(str, Enum):
    """Processor event types the system reacts to."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    SUBSCRIPTION_TRIAL_WILL_END = "customer.subscription.trial_will_end"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    INVOICE_PAYMENT_ACTION_REQUIRED = "invoice.payment_action_required"
    INVOICE_UPCOMING = "invoice.upcoming"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    CUSTOMER_UPDATED = "customer.updated"
    UNHANDLED = "unhandled"

    @classmethod
    def parse(cls, value: str) -> EventKind:
        """Map an event type string; anything unknown is UNHANDLED."""
        try:
            kind = cls(value)
        except ValueError:
            return cls.UNHANDLED
        return kind


def _no_notices(old: Any, new: Any, data: dict[str, Any]) -> list[Notice]:
    return []


@dataclass(frozen=True)
class EventHandler:
    """Pure reconciliation functions for one event kind."""

    store: str | None  # "subscriptions", "customers" or None for log-only
    key: Callable[[dict[str, Any]], str | None]
    reduce: Callable[[dict[str, Any], Any], Any]
    notices: Callable[[Any, Any, dict[str, Any]], list[Notice]] = _no_notices


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------


def _id_of(value: Any) -> str | None:
    """Processor references are either an id string or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _subscription_key(data: dict[str, Any]) -> str | None:
    return _id_of(data.get("id"))


def _invoice_subscription_key(data: dict[str, Any]) -> str | None:
    subscription = _id_of(data.get("subscription"))
    if subscription:
        return subscription
    # Newer invoice format nests it under parent.subscription_details
    parent = data.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _id_of(details.get("subscription"))


def _checkout_key(data: dict[str, Any]) -> str | None:
    return _id_of(data.get("subscription"))


def _customer_key(data: dict[str, Any]) -> str | None:
    return _id_of(data.get("id"))


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------


def reduce_checkout_completed(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is not None:
        # Subscription already created by an earlier delivery
        return current

    metadata = data.get("metadata") or {}
    plan = metadata.get("plan")
    subscription_id = _checkout_key(data)
    if not plan or not subscription_id:
        logger.warning("Checkout session without plan metadata or subscription; skipping")
        return None

    subscription = data.get("subscription") if isinstance(data.get("subscription"), dict) else {}
    status = SubscriptionStatus.TRIALING if subscription.get("trial_end") else SubscriptionStatus.ACTIVE
    return SubscriptionState(
        subscription_id=subscription_id,
        customer_id=_id_of(data.get("customer")),
        plan=plan,
        status=status,
        current_period_end=subscription.get("current_period_end"),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end", False)),
        trial_end=subscription.get("trial_end"),
    )


def reduce_subscription_changed(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    subscription_id = _subscription_key(data)
    if not subscription_id:
        return None

    metadata = data.get("metadata") or {}
    plan = metadata.get("plan") or (current.plan if current else "free")
    fields = {
        "customer_id": _id_of(data.get("customer")) or (current.customer_id if current else None),
        "plan": plan,
        "status": SubscriptionStatus.from_processor(data.get("status")),
        "current_period_end": data.get("current_period_end"),
        "cancel_at_period_end": bool(data.get("cancel_at_period_end", False)),
        "trial_end": data.get("trial_end"),
    }
    if current is None:
        return SubscriptionState(subscription_id=subscription_id, **fields)
    return replace(current, **fields)


def reduce_subscription_deleted(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is None:
        return None
    return replace(current, status=SubscriptionStatus.CANCELED)


def reduce_trial_will_end(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is None:
        return None
    trial_end = data.get("trial_end") or current.trial_end
    return replace(current, trial_end=trial_end, trial_notice_for=trial_end)


def reduce_invoice_paid(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is None:
        return None
    return replace(current, status=SubscriptionStatus.ACTIVE, last_paid_invoice=data.get("id"))


def reduce_invoice_failed(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is None:
        return None
    return replace(
        current, status=SubscriptionStatus.PAST_DUE, last_failed_invoice=data.get("id")
    )


def reduce_payment_action_required(
    data: dict[str, Any], current: SubscriptionState | None
) -> SubscriptionState | None:
    if current is None:
        return None
    return replace(current, action_required_invoice=data.get("id"))


def reduce_unchanged(data: dict[str, Any], current: Any) -> Any:
    return current


def reduce_customer_updated(
    data: dict[str, Any], current: CustomerState | None
) -> CustomerState | None:
    customer_id = _customer_key(data)
    if not customer_id:
        return None
    email = data.get("email") or (current.email if current else None)
    name = data.get("name") or (current.name if current else None)
    return CustomerState(customer_id=customer_id, email=email, name=name)


# ---------------------------------------------------------------------------
# Notices, gated on the transition rather than on invocation
# ---------------------------------------------------------------------------


def _notice(kind: str, state: SubscriptionState, **context: Any) -> Notice:
    return Notice(
        kind=kind,
        subscription_id=state.subscription_id,
        customer_id=state.customer_id,
        context=context,
    )


def notices_checkout(
    old: SubscriptionState | None, new: SubscriptionState | None, data: dict[str, Any]
) -> list[Notice]:
    if old is None and new is not None:
        return [_notice("upgrade_confirmation", new, plan=new.plan)]
    return []


def notices_canceled(
    old: SubscriptionState, new: SubscriptionState, data: dict[str, Any]
) -> list[Notice]:
    if old.status != SubscriptionStatus.CANCELED and new.status == SubscriptionStatus.CANCELED:
        return [_notice("subscription_canceled", new)]
    return []


def notices_trial(
    old: SubscriptionState, new: SubscriptionState, data: dict[str, Any]
) -> list[Notice]:
    if new.trial_notice_for is not None and old.trial_notice_for != new.trial_notice_for:
        return [_notice("trial_ending", new, trial_end=new.trial_end)]
    return []


def notices_paid(
    old: SubscriptionState, new: SubscriptionState, data: dict[str, Any]
) -> list[Notice]:
    if new.last_paid_invoice and old.last_paid_invoice != new.last_paid_invoice:
        return [
            _notice(
                "payment_confirmation",
                new,
                invoice_id=new.last_paid_invoice,
                amount=data.get("amount_paid"),
                currency=(data.get("currency") or "").upper(),
            )
        ]
    return []


def notices_failed(
    old: SubscriptionState, new: SubscriptionState, data: dict[str, Any]
) -> list[Notice]:
    if new.last_failed_invoice and old.last_failed_invoice != new.last_failed_invoice:
        return [
            _notice(
                "payment_failed",
                new,
                invoice_id=new.last_failed_invoice,
                amount=data.get("amount_due"),
            )
        ]
    return []


def notices_action_required(
    old: SubscriptionState, new: SubscriptionState, data: dict[str, Any]
) -> list[Notice]:
    url = data.get("hosted_invoice_url")
    if url and new.action_required_invoice and old.action_required_invoice != new.action_required_invoice:
        return [_notice("payment_action_required", new, invoice_url=url)]
    return []


HANDLERS: dict[EventKind, EventHandler] = {
    EventKind.CHECKOUT_SESSION_COMPLETED: EventHandler(
        "subscriptions", _checkout_key, reduce_checkout_completed, notices_checkout
    ),
    EventKind.SUBSCRIPTION_CREATED: EventHandler(
        "subscriptions", _subscription_key, reduce_subscription_changed
    ),
    EventKind.SUBSCRIPTION_UPDATED: EventHandler(
        "subscriptions", _subscription_key, reduce_subscription_changed
    ),
    EventKind.SUBSCRIPTION_DELETED: EventHandler(
        "subscriptions", _subscription_key, reduce_subscription_deleted, notices_canceled
    ),
    EventKind.SUBSCRIPTION_TRIAL_WILL_END: EventHandler(
        "subscriptions", _subscription_key, reduce_trial_will_end, notices_trial
    ),
    EventKind.INVOICE_PAYMENT_SUCCEEDED: EventHandler(
        "subscriptions", _invoice_subscription_key, reduce_invoice_paid, notices_paid
    ),
    EventKind.INVOICE_PAYMENT_FAILED: EventHandler(
        "subscriptions", _invoice_subscription_key, reduce_invoice_failed, notices_failed
    ),
    EventKind.INVOICE_PAYMENT_ACTION_REQUIRED: EventHandler(
        "subscriptions",
        _invoice_subscription_key,
        reduce_payment_action_required,
        notices_action_required,
    ),
    EventKind.INVOICE_UPCOMING: EventHandler(
        "subscriptions", _invoice_subscription_key, reduce_unchanged
    ),
    EventKind.PAYMENT_INTENT_SUCCEEDED: EventHandler(None, _customer_key, reduce_unchanged),
    EventKind.PAYMENT_INTENT_FAILED: EventHandler(None, _customer_key, reduce_unchanged),
    EventKind.CUSTOMER_UPDATED: EventHandler("customers", _customer_key, reduce_customer_updated),
}


class HandlerRegistry:
    """
    Static table of handlers plus the runner that applies them.

    Raises ConfigurationError at construction if a known event kind has no
    handler, so a new ``EventKind`` member cannot be silently dropped.
    """

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        customers: CustomerStore,
        notifier: Notifier | None = None,
        handlers: dict[EventKind, EventHandler] | None = None,
    ) -> None:
        self._handlers = dict(HANDLERS if handlers is None else handlers)
        missing = [
            kind.value
            for kind in EventKind
            if kind is not EventKind.UNHANDLED and kind not in self._handlers
        ]
        if missing:
            raise ConfigurationError(
                "No handler registered for event kinds", details={"missing": missing}
            )

        self._stores: dict[str, StateStore] = {
            subscriptions.collection: subscriptions,
            customers.collection: customers,
        }
        self._notifier = notifier or LoggingNotifier()

    def resolve(self, kind: EventKind) -> EventHandler | None:
        if kind is EventKind.UNHANDLED:
            return None
        return self._handlers[kind]

    async def apply(self, kind: EventKind, data: dict[str, Any]) -> bool:
        """
        Run the handler for ``kind`` against the current state.

        Returns:
            True if state changed (and notices were emitted), False otherwise.
        """
        handler = self.resolve(kind)
        if handler is None:
            return False

        key = handler.key(data)
        if handler.store is None:
            logger.info(f"{kind.value} received for {key}; nothing to reconcile")
            return False
        if key is None:
            logger.warning(f"{kind.value} carries no target id; nothing to reconcile")
            return False

        store = self._stores[handler.store]
        current = await store.get(key)
        new = handler.reduce(data, current)

        if new is None:
            logger.warning(f"{kind.value}: no {handler.store} record for {key}; skipping")
            return False
        if new == current:
            logger.debug(f"{kind.value}: {handler.store}/{key} already up to date")
            return False

        await store.save(key, new)
        logger.info(f"{kind.value}: {handler.store}/{key} reconciled")

        for notice in handler.notices(current, new, data):
            await self._notifier.send(notice)
        return True
