"""
HTTP transport used by the delivery engine.

The engine depends only on the ``HttpTransport`` protocol so tests can swap
in an in-process fake.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import httpx

from brokerhooks.core.exceptions import NetworkError


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    reason: str = ""
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpTransport(Protocol):
    async def post(
        self,
        url: str,
        content: bytes,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        """
        POST ``content`` to ``url``.

        Raises:
            NetworkError: On timeout or connection failure.
        """
        ...


class HttpxTransport:
    """``HttpTransport`` backed by a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def post(
        self,
        url: str,
        content: bytes,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        client = self._get_client()
        try:
            response = await client.post(
                url, content=content, headers=dict(headers), timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timed out after {timeout}s", url=url, is_timeout=True
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}", url=url) from e

        return TransportResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            text=response.text,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
