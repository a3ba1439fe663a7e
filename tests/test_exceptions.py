"""Unit tests for exceptions module."""

import logging

from brokerhooks.core.exceptions import (
    BrokerHooksError,
    ConfigurationError,
    HandlerError,
    InvalidSignatureError,
    NetworkError,
    StorageError,
    ValidationError,
)
from brokerhooks.core.logging import LOGGER_NAME, configure_logging, get_logger


class TestExceptions:
    def test_hierarchy(self) -> None:
        for cls in (ConfigurationError, ValidationError, HandlerError, NetworkError, StorageError):
            assert issubclass(cls, BrokerHooksError)
        assert issubclass(InvalidSignatureError, ValidationError)

    def test_message_and_details(self) -> None:
        error = BrokerHooksError("Something failed", details={"key": "value"})

        assert error.message == "Something failed"
        assert error.details == {"key": "value"}
        assert str(error) == "Something failed | Details: {'key': 'value'}"

    def test_str_without_details(self) -> None:
        assert str(ConfigurationError("bad")) == "bad"

    def test_handler_error_carries_event(self) -> None:
        error = HandlerError("Handler failed", event_id="evt_1", event_type="invoice.payment_failed")

        assert error.event_id == "evt_1"
        assert str(error) == "[invoice.payment_failed:evt_1] Handler failed"

    def test_network_error_fields(self) -> None:
        error = NetworkError("timed out", url="https://x", is_timeout=True)

        assert error.url == "https://x"
        assert error.is_timeout is True
        assert error.status_code is None


class TestLogging:
    def test_child_loggers_share_root(self) -> None:
        assert get_logger("delivery.engine").name == f"{LOGGER_NAME}.delivery.engine"
        assert get_logger().name == LOGGER_NAME

    def test_configure_logging_does_not_stack_handlers(self) -> None:
        configure_logging("DEBUG")
        logger = configure_logging(logging.INFO, json_format=True)

        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
        assert logger.propagate is False
