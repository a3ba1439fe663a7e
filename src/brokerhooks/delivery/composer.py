"""
Outbound notification payload composition.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timezone

from brokerhooks.core.exceptions import ValidationError
from brokerhooks.core.types import Alert, AlertSeverity, OutboundPayload, Reference

PAYLOAD_VERSION = "v1"
ALERT_EVENT = "alert.notification"


def summarize(items: Iterable[Alert]) -> dict[str, int]:
    """Count alerts by severity, in a fixed key order."""
    summary = {"total": 0, "critical": 0, "warning": 0, "info": 0}
    for item in items:
        summary["total"] += 1
        summary[AlertSeverity(item.severity).value] += 1
    return summary


def _iso_timestamp(now: datetime) -> str:
    # Millisecond precision with a Z suffix, e.g. 2024-01-01T00:00:00.000Z
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid alert timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def batch_time(items: Iterable[Alert]) -> datetime:
    """
    Time of the newest alert in the batch.

    Used as the envelope timestamp so composing the same batch twice yields
    identical bytes.

    Raises:
        ValidationError: The batch is empty or holds an unparseable timestamp.
    """
    times = [_parse_timestamp(item.timestamp) for item in items]
    if not times:
        raise ValidationError("Cannot timestamp an empty alert batch")
    return max(times)


def compose(
    items: Iterable[Alert],
    tenant: Reference,
    source: Reference,
    now: datetime | None = None,
    version: str = PAYLOAD_VERSION,
) -> OutboundPayload:
    """
    Build the notification envelope.

    Items keep the order they were received in. The timestamp is ``now`` when
    given, otherwise the newest alert's timestamp.
    """
    ordered = tuple(items)
    return OutboundPayload(
        version=version,
        event=ALERT_EVENT,
        timestamp=_iso_timestamp(now or batch_time(ordered)),
        tenant=tenant,
        source=source,
        items=ordered,
        summary=summarize(ordered),
    )


def serialize(payload: OutboundPayload) -> bytes:
    """
    Serialize a payload to compact JSON bytes.

    Key order follows insertion order of ``to_dict`` so equal payloads always
    produce equal bytes, and therefore equal signatures.
    """
    return json.dumps(
        payload.to_dict(), separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")
