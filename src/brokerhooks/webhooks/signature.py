"""
HMAC-SHA256 signing shared by inbound verification and outbound delivery.
"""

from __future__ import annotations

import secrets
from typing import Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from brokerhooks.core.exceptions import ConfigurationError

SIGNATURE_PREFIX = "sha256="


def _mac(secret: str | bytes) -> hmac.HMAC:
    if not secret:
        raise ConfigurationError("Signing secret must not be empty")
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return hmac.HMAC(key, hashes.SHA256())


def sign(payload: bytes, secret: str | bytes) -> str:
    """Return the hex HMAC-SHA256 of ``payload`` under ``secret``."""
    mac = _mac(secret)
    mac.update(payload)
    return mac.finalize().hex()


def verify(payload: bytes, signature: str | None, secret: str | bytes) -> bool:
    """
    Check ``signature`` against ``payload`` in constant time.

    Accepts a bare hex digest or the ``sha256=<hex>`` header form.
    """
    if not signature:
        return False

    value = signature.strip()
    if value.startswith(SIGNATURE_PREFIX):
        value = value[len(SIGNATURE_PREFIX) :]

    try:
        expected = bytes.fromhex(value)
    except ValueError:
        return False

    mac = _mac(secret)
    mac.update(payload)
    try:
        mac.verify(expected)
    except InvalidSignature:
        return False
    return True


def format_signature_header(digest: str) -> str:
    return f"{SIGNATURE_PREFIX}{digest}"


def generate_webhook_secret() -> str:
    """Generate a new 256-bit endpoint secret (64 hex characters)."""
    return secrets.token_hex(32)


class Signer(Protocol):
    """Anything that can sign a payload; injected into the delivery engine."""

    def sign(self, payload: bytes, secret: str) -> str: ...


class HmacSigner:
    """Default signer producing HMAC-SHA256 hex digests."""

    def sign(self, payload: bytes, secret: str) -> str:
        return sign(payload, secret)

    def verify(self, payload: bytes, signature: str | None, secret: str) -> bool:
        return verify(payload, signature, secret)
