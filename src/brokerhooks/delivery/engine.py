"""
Outbound webhook delivery with bounded exponential-backoff retries.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from brokerhooks.core.config import Config
from brokerhooks.core.exceptions import ConfigurationError, NetworkError
from brokerhooks.core.logging import get_logger
from brokerhooks.core.types import DeliveryAttempt, DeliveryOutcome, DeliveryResult, Endpoint
from brokerhooks.delivery.composer import ALERT_EVENT
from brokerhooks.delivery.transport import HttpTransport
from brokerhooks.resilience.retry import Sleep, delivery_retrying, is_retryable_status
from brokerhooks.webhooks.signature import HmacSigner, Signer, format_signature_header

EVENT_HEADER = "X-BrokerHooks-Event"
VERSION_HEADER = "X-BrokerHooks-Version"
TIMESTAMP_HEADER = "X-BrokerHooks-Timestamp"
SIGNATURE_HEADER = "X-BrokerHooks-Signature"


class DeliveryEngine:
    """
    Delivers one serialized payload to one endpoint.

    The payload bytes are signed once per delivery and the same bytes and
    headers are reused for every retry, so a receiver sees an identical,
    independently verifiable request each time.
    """

    def __init__(
        self,
        transport: HttpTransport,
        config: Config,
        signer: Signer | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._config = config
        self._signer = signer or HmacSigner()
        self._sleep = sleep
        self._logger = get_logger("delivery.engine")

    def build_headers(
        self,
        endpoint: Endpoint,
        payload_bytes: bytes,
        event: str = ALERT_EVENT,
        timestamp: str | None = None,
        version: str | None = None,
    ) -> dict[str, str]:
        """
        Headers for one delivery, computed once and reused on every retry.

        ``version`` and ``timestamp`` should come from the composed payload so
        headers and body agree; they fall back to the endpoint's version and
        the current time.
        """
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._config.user_agent,
            EVENT_HEADER: event,
            VERSION_HEADER: version or endpoint.payload_version,
            TIMESTAMP_HEADER: timestamp
            or datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
        if endpoint.secret:
            digest = self._signer.sign(payload_bytes, endpoint.secret)
            headers[SIGNATURE_HEADER] = format_signature_header(digest)
        return headers

    async def _attempt_once(
        self,
        endpoint: Endpoint,
        payload_bytes: bytes,
        headers: dict[str, str],
        attempt: int,
    ) -> DeliveryAttempt:
        """One POST under the per-attempt timeout; never raises for HTTP or network outcomes."""
        timeout = self._config.request_timeout
        try:
            response = await asyncio.wait_for(
                self._transport.post(endpoint.url, payload_bytes, headers, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning(f"Webhook {endpoint.id} timed out after {timeout}s (attempt {attempt})")
            return DeliveryAttempt(
                endpoint_id=endpoint.id,
                attempt_number=attempt,
                outcome=DeliveryOutcome.TRANSIENT_FAILURE,
                error_message=f"Request timed out after {timeout}s",
            )
        except NetworkError as e:
            self._logger.warning(f"Webhook {endpoint.id} network error (attempt {attempt}): {e.message}")
            return DeliveryAttempt(
                endpoint_id=endpoint.id,
                attempt_number=attempt,
                outcome=DeliveryOutcome.TRANSIENT_FAILURE,
                error_message=e.message,
            )

        if response.ok:
            return DeliveryAttempt(
                endpoint_id=endpoint.id,
                attempt_number=attempt,
                outcome=DeliveryOutcome.SUCCESS,
                status_code=response.status_code,
            )

        self._logger.warning(
            f"Webhook {endpoint.id} returned HTTP {response.status_code} (attempt {attempt})"
        )
        outcome = (
            DeliveryOutcome.TRANSIENT_FAILURE
            if is_retryable_status(response.status_code)
            else DeliveryOutcome.PERMANENT_FAILURE
        )
        return DeliveryAttempt(
            endpoint_id=endpoint.id,
            attempt_number=attempt,
            outcome=outcome,
            status_code=response.status_code,
            error_message=(
                f"HTTP {response.status_code}: {response.reason}"
                if response.reason
                else f"HTTP {response.status_code}"
            ),
        )

    async def deliver_attempts(
        self,
        endpoint: Endpoint,
        payload_bytes: bytes,
        attempt: int = 0,
        headers: dict[str, str] | None = None,
    ) -> list[DeliveryAttempt]:
        """
        Run the full retry chain and return every attempt made, in order.

        Raises:
            ConfigurationError: The endpoint cannot be delivered to at all.
        """
        if not endpoint.url:
            raise ConfigurationError(f"Endpoint {endpoint.id} has no URL")

        headers = headers or self.build_headers(endpoint, payload_bytes)
        attempts: list[DeliveryAttempt] = []

        retrying = delivery_retrying(
            should_retry=lambda a: a is not None and a.is_transient,
            max_retries=self._config.max_retries,
            base_delay=self._config.retry_base_delay,
            first_attempt=attempt,
            sleep=self._sleep,
        )
        async for try_ in retrying:
            with try_:
                number = attempt + try_.retry_state.attempt_number - 1
                result = await self._attempt_once(endpoint, payload_bytes, headers, number)
                attempts.append(result)
            if not try_.retry_state.outcome.failed:
                try_.retry_state.set_result(result)

        return attempts

    async def deliver(
        self,
        endpoint: Endpoint,
        payload_bytes: bytes,
        attempt: int = 0,
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        """
        Deliver ``payload_bytes`` to ``endpoint``.

        Transient failures (5xx, 429, timeout, network) are retried while
        ``attempt < max_retries``; anything else is terminal at once.
        """
        attempts = await self.deliver_attempts(endpoint, payload_bytes, attempt, headers)
        result = replace(DeliveryResult.from_attempt(attempts[-1]), attempts=len(attempts))

        if result.success:
            self._logger.info(
                f"Webhook {endpoint.id} delivered (HTTP {result.status_code}, attempts={result.attempts})"
            )
        else:
            self._logger.error(
                f"Webhook {endpoint.id} failed terminally after {result.attempts} attempt(s): {result.error}"
            )
        return result
