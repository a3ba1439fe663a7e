"""
Type definitions for brokerhooks.

This module contains the enums and data classes shared by the inbound
(payment processor) and outbound (alert notification) halves of the
webhook subsystem.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass
class InboundEvent:
    """
    One notification received from the payment processor.

    ``id`` is assigned by the processor and is the deduplication key.
    ``raw_payload`` holds the exact request body the signature was checked
    against.
    """

    id: str
    type: str
    raw_payload: bytes
    processed: bool = False
    received_at: datetime = field(default_factory=utcnow)
    data: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "raw_payload": base64.b64encode(self.raw_payload).decode("ascii"),
            "processed": self.processed,
            "received_at": self.received_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> InboundEvent:
        return cls(
            id=record["id"],
            type=record["type"],
            raw_payload=base64.b64decode(record.get("raw_payload", "")),
            processed=bool(record.get("processed", False)),
            received_at=datetime.fromisoformat(record["received_at"]),
        )


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class EndpointKind(str, Enum):
    """Kind of notification subscriber."""

    WEBHOOK = "webhook"
    SLACK = "slack"


@dataclass(frozen=True)
class Endpoint:
    """
    A tenant-registered notification subscriber.

    Managed by the external CRUD layer; the delivery core only reads it.
    """

    id: str
    url: str
    secret: str | None = None
    enabled: bool = True
    payload_version: str = "v1"
    tenant_id: str | None = None
    kind: EndpointKind = EndpointKind.WEBHOOK

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "secret": self.secret,
            "enabled": self.enabled,
            "payload_version": self.payload_version,
            "tenant_id": self.tenant_id,
            "kind": self.kind.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Endpoint:
        return cls(
            id=record["id"],
            url=record["url"],
            secret=record.get("secret"),
            enabled=bool(record.get("enabled", True)),
            payload_version=record.get("payload_version", "v1"),
            tenant_id=record.get("tenant_id"),
            kind=EndpointKind(record.get("kind", EndpointKind.WEBHOOK.value)),
        )


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Alert:
    """A single alert raised by the broker monitor."""

    id: str
    severity: AlertSeverity
    category: str
    title: str
    description: str
    source_type: str
    source_name: str
    timestamp: str
    server_id: str | None = None
    server_name: str | None = None
    vhost: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "serverId": self.server_id,
            "serverName": self.server_name,
            "severity": self.severity.value,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "details": dict(self.details),
            "timestamp": self.timestamp,
            "source": {"type": self.source_type, "name": self.source_name},
        }
        if self.vhost is not None:
            data["vhost"] = self.vhost
        return data


@dataclass(frozen=True)
class Reference:
    """An ``{id, name}`` pair naming the tenant or the monitored server."""

    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class OutboundPayload:
    """Versioned notification envelope sent to every endpoint."""

    version: str
    event: str
    timestamp: str
    tenant: Reference
    source: Reference
    items: tuple[Alert, ...]
    summary: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "event": self.event,
            "timestamp": self.timestamp,
            "tenant": self.tenant.to_dict(),
            "source": self.source.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "summary": dict(self.summary),
        }


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"  # 5xx, 429, timeout, network error
    PERMANENT_FAILURE = "permanent_failure"  # any other non-2xx


@dataclass(frozen=True)
class DeliveryAttempt:
    """One HTTP POST to one endpoint. Never persisted."""

    endpoint_id: str
    attempt_number: int
    outcome: DeliveryOutcome
    status_code: int | None = None
    error_message: str | None = None

    @property
    def is_transient(self) -> bool:
        return self.outcome == DeliveryOutcome.TRANSIENT_FAILURE


@dataclass(frozen=True)
class DeliveryResult:
    """Final outcome of one endpoint's delivery chain."""

    endpoint_id: str
    success: bool
    attempts: int
    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None

    @classmethod
    def from_attempt(cls, attempt: DeliveryAttempt) -> DeliveryResult:
        return cls(
            endpoint_id=attempt.endpoint_id,
            success=attempt.outcome == DeliveryOutcome.SUCCESS,
            attempts=attempt.attempt_number + 1,
            outcome=attempt.outcome,
            status_code=attempt.status_code,
            error=attempt.error_message,
        )
