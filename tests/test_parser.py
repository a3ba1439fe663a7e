import json

import pytest

from brokerhooks.core.exceptions import InvalidSignatureError, ValidationError
from brokerhooks.webhooks.parser import WebhookParser
from brokerhooks.webhooks.signature import sign
from conftest import INBOUND_SECRET, signed_request


@pytest.fixture
def parser():
    return WebhookParser(secret=INBOUND_SECRET)


def test_verify_signature_valid(parser):
    body, headers = signed_request({"id": "evt_1", "type": "customer.updated"})
    assert parser.verify_signature(body, headers) is True


def test_verify_signature_header_lookup_is_case_insensitive(parser):
    body, headers = signed_request({"id": "evt_1", "type": "customer.updated"})
    lowered = {k.lower(): v for k, v in headers.items()}
    assert parser.verify_signature(body, lowered) is True


def test_verify_signature_tampered_payload(parser):
    body, headers = signed_request({"id": "evt_1", "type": "customer.updated"})
    with pytest.raises(InvalidSignatureError, match="Signature mismatch"):
        parser.verify_signature(body.replace(b"evt_1", b"evt_2"), headers)


def test_verify_signature_wrong_secret(parser):
    body, headers = signed_request({"id": "evt_1", "type": "x"}, secret="someone-else")
    with pytest.raises(InvalidSignatureError, match="Signature mismatch"):
        parser.verify_signature(body, headers)


def test_verify_signature_missing_header(parser):
    with pytest.raises(InvalidSignatureError, match="Missing X-Webhook-Signature header"):
        parser.verify_signature(b"{}", {})


def test_custom_signature_header():
    parser = WebhookParser(secret="s", signature_header="Stripe-Signature")
    body = b'{"id":"evt_1","type":"x"}'
    assert parser.verify_signature(body, {"Stripe-Signature": sign(body, "s")})


def test_parse_extracts_id_type_and_object(parser):
    body = json.dumps(
        {"id": "evt_1", "type": "customer.updated", "data": {"object": {"id": "cus_1"}}}
    ).encode()

    event = parser.parse(body)

    assert event.id == "evt_1"
    assert event.type == "customer.updated"
    assert event.data == {"id": "cus_1"}
    assert event.raw_payload == body
    assert event.processed is False


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        b"[1, 2]",
        b'{"type": "customer.updated"}',
        b'{"id": "evt_1"}',
        b'{"id": 7, "type": "customer.updated"}',
    ],
)
def test_parse_rejects_malformed_events(parser, body):
    with pytest.raises(ValidationError):
        parser.parse(body)


def test_handle_verifies_before_parsing(parser):
    # Garbage body with a bad signature fails on the signature, not on JSON
    with pytest.raises(InvalidSignatureError):
        parser.handle(b"not json", {"X-Webhook-Signature": "sha256=00"})
