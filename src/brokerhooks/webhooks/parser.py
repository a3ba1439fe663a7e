"""
Webhook Parser Infrastructure.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from brokerhooks.core.exceptions import InvalidSignatureError, ValidationError
from brokerhooks.core.types import InboundEvent, utcnow
from brokerhooks.webhooks.signature import verify


def _header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup over a plain mapping."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class WebhookParser:
    """
    Framework-agnostic webhook parser for payment processor notifications.

    Validates signatures against the raw body and converts it into an
    ``InboundEvent``. Does NOT handle HTTP transport - that is the
    application's responsibility.
    """

    def __init__(self, secret: str, signature_header: str = "X-Webhook-Signature") -> None:
        """
        Initialize parser.

        Args:
            secret: Shared secret issued by the payment processor.
            signature_header: Name of the header carrying the HMAC.
        """
        self.secret = secret
        self.signature_header = signature_header

    def verify_signature(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """
        Verify the webhook signature over the exact request body.

        Args:
            payload: Raw request body, never a re-serialized form
            headers: Request headers

        Returns:
            True if valid

        Raises:
            InvalidSignatureError: If the header is missing or does not match
        """
        signature = _header(headers, self.signature_header)
        if not signature:
            raise InvalidSignatureError(f"Missing {self.signature_header} header")

        if not verify(payload, signature, self.secret):
            raise InvalidSignatureError("Signature mismatch")

        return True

    def parse(self, payload: bytes) -> InboundEvent:
        """
        Parse a verified body into an event.

        Raises:
            ValidationError: If payload malformed
        """
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Invalid JSON payload: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError("Webhook payload must be a JSON object")

        event_id = data.get("id")
        event_type = data.get("type")
        if not isinstance(event_id, str) or not event_id:
            raise ValidationError("Missing 'id' in payload")
        if not isinstance(event_type, str) or not event_type:
            raise ValidationError("Missing 'type' in payload", details={"id": event_id})

        # Processor envelopes nest the object under data.object
        body = data.get("data") or {}
        obj = body.get("object", body) if isinstance(body, dict) else {}

        return InboundEvent(
            id=event_id,
            type=event_type,
            raw_payload=payload,
            processed=False,
            received_at=utcnow(),
            data=obj if isinstance(obj, dict) else {},
        )

    def handle(self, payload: bytes, headers: Mapping[str, str]) -> InboundEvent:
        """
        Verify then parse a webhook request.

        Raises:
            InvalidSignatureError: If signature invalid
            ValidationError: If payload malformed
        """
        self.verify_signature(payload, headers)
        return self.parse(payload)
