"""
Exception hierarchy for brokerhooks.

All package-specific exceptions inherit from BrokerHooksError for easy catching.

Only faults are exceptions. Expected outcomes of outbound delivery (HTTP
status classes, timeouts after retries) are reported as values in
``DeliveryResult`` and never raised past the delivery engine.
"""

from __future__ import annotations

from typing import Any


class BrokerHooksError(Exception):
    """
    Base exception for all brokerhooks errors.

    Example:
        >>> try:
        ...     await dispatcher.dispatch(body, headers)
        ... except BrokerHooksError as e:
        ...     print(f"Webhook error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BrokerHooksError):
    """
    Configuration is missing or invalid.

    Raised when:
    - Required configuration values are not provided
    - Configuration values fail validation
    - An endpoint record cannot be delivered to (e.g. no URL)
    """

    pass


class ValidationError(BrokerHooksError):
    """
    Inbound payload validation error.

    Raised when:
    - The request body is not a JSON object
    - The event id or type is missing
    """

    pass


class InvalidSignatureError(ValidationError):
    """
    Inbound webhook signature verification failed.

    Raised before any state is touched; the request must be rejected.
    """

    pass


class HandlerError(BrokerHooksError):
    """
    An event handler failed while reconciling state.

    The receiver answers with a non-2xx status so the payment processor
    redelivers the event later.
    """

    def __init__(
        self,
        message: str,
        event_id: str,
        event_type: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.event_id = event_id
        self.event_type = event_type

    def __str__(self) -> str:
        return f"[{self.event_type}:{self.event_id}] {self.message}"


class NetworkError(BrokerHooksError):
    """
    Network or transport failure during an outbound request.

    Raised when:
    - The HTTP request times out
    - The connection cannot be established or is reset
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        is_timeout: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
        self.is_timeout = is_timeout


class StorageError(BrokerHooksError):
    """A storage backend could not complete an operation."""

    pass
