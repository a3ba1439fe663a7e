import httpx
import pytest

from brokerhooks.core.exceptions import NetworkError
from brokerhooks.delivery.transport import HttpxTransport, TransportResponse


def make_transport(handler):
    return HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_post_sends_body_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        seen["signature"] = request.headers.get("X-BrokerHooks-Signature")
        return httpx.Response(202, text="accepted")

    transport = make_transport(handler)
    response = await transport.post(
        "https://hooks.example.com/a", b'{"a":1}', {"X-BrokerHooks-Signature": "sha256=ab"}, 5.0
    )

    assert response == TransportResponse(status_code=202, reason="Accepted", text="accepted")
    assert response.ok
    assert seen == {"body": b'{"a":1}', "signature": "sha256=ab"}


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised():
    transport = make_transport(lambda request: httpx.Response(503))

    response = await transport.post("https://hooks.example.com/a", b"{}", {}, 5.0)

    assert response.status_code == 503
    assert not response.ok


@pytest.mark.asyncio
async def test_connection_error_becomes_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError) as exc_info:
        await make_transport(handler).post("https://hooks.example.com/a", b"{}", {}, 5.0)

    assert exc_info.value.is_timeout is False
    assert exc_info.value.url == "https://hooks.example.com/a"


@pytest.mark.asyncio
async def test_timeout_becomes_timeout_network_error():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(NetworkError) as exc_info:
        await make_transport(handler).post("https://hooks.example.com/a", b"{}", {}, 0.5)

    assert exc_info.value.is_timeout is True


@pytest.mark.asyncio
async def test_owned_client_is_closed():
    transport = HttpxTransport()
    async with transport:
        assert transport._get_client() is not None
    assert transport._client is None


@pytest.mark.asyncio
async def test_injected_client_is_left_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    async with HttpxTransport(client):
        pass

    assert not client.is_closed
    await client.aclose()
