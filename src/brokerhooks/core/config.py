"""
Configuration management for brokerhooks.

Handles loading configuration from environment variables and validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

from brokerhooks.core.exceptions import ConfigurationError


def _get_env_var(name: str, default: str | None = None, required: bool = False) -> str | None:
    """Get environment variable with optional default."""
    value = os.environ.get(name, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {name} is not set")
    return value


@dataclass(frozen=True)
class Config:
    """Webhook subsystem configuration."""

    # Secret shared with the payment processor for inbound signatures
    inbound_secret: str
    signature_header: str = "X-Webhook-Signature"
    storage_backend: str = "memory"
    redis_url: str | None = None
    log_level: str = "INFO"

    # Outbound delivery
    request_timeout: float = 10.0  # Per attempt, seconds
    max_retries: int = 3
    retry_base_delay: float = 1.0  # 1s, 2s, 4s
    user_agent: str = "BrokerHooks-Webhook/1.0"

    # Dashboard link rendered into chat notifications
    frontend_url: str | None = None

    env: str = "development"

    def __post_init__(self) -> None:
        if not self.inbound_secret:
            raise ConfigurationError("inbound_secret is required")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay cannot be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Load configuration from environment variables."""
        inbound_secret = overrides.get("inbound_secret") or _get_env_var(
            "BROKERHOOKS_INBOUND_SECRET", required=True
        )

        signature_header = overrides.get("signature_header") or _get_env_var(
            "BROKERHOOKS_SIGNATURE_HEADER", default=cls.signature_header
        )

        storage_backend = overrides.get("storage_backend") or _get_env_var(
            "BROKERHOOKS_STORAGE_BACKEND", default=cls.storage_backend
        )

        redis_url = overrides.get("redis_url") or _get_env_var("BROKERHOOKS_REDIS_URL")

        log_level = overrides.get("log_level") or _get_env_var(
            "BROKERHOOKS_LOG_LEVEL", default="INFO"
        )

        frontend_url = overrides.get("frontend_url") or _get_env_var("BROKERHOOKS_FRONTEND_URL")

        env = overrides.get("env") or _get_env_var("BROKERHOOKS_ENV", default="development")

        timeout_raw = overrides.get("request_timeout")
        if timeout_raw is None:
            timeout_raw = _get_env_var(
                "BROKERHOOKS_REQUEST_TIMEOUT", default=str(cls.request_timeout)
            )
        retries_raw = overrides.get("max_retries")
        if retries_raw is None:
            retries_raw = _get_env_var("BROKERHOOKS_MAX_RETRIES", default=str(cls.max_retries))

        try:
            request_timeout = float(timeout_raw)  # type: ignore[arg-type]
            max_retries = int(retries_raw)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid numeric configuration: {e}") from e

        return cls(
            inbound_secret=inbound_secret,  # type: ignore
            signature_header=signature_header,  # type: ignore
            storage_backend=storage_backend,  # type: ignore
            redis_url=redis_url,
            log_level=log_level,  # type: ignore
            request_timeout=request_timeout,
            max_retries=max_retries,
            retry_base_delay=overrides.get("retry_base_delay", cls.retry_base_delay),
            user_agent=overrides.get("user_agent", cls.user_agent),
            frontend_url=frontend_url,
            env=env,  # type: ignore
        )

    def with_updates(self, **updates: Any) -> Config:
        """Create a new Config with updated values."""
        return replace(self, **updates)

    def masked_secret(self) -> str:
        """Return the inbound secret with most characters masked for safe logging."""
        if len(self.inbound_secret) <= 8:
            return "****"
        return self.inbound_secret[:4] + "..." + self.inbound_secret[-4:]
