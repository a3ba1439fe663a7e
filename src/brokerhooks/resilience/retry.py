"""
Retry policy for outbound webhook delivery, using Tenacity.

Delivery attempts return values instead of raising for expected failures,
so the policy retries on *results* (``retry_if_result``) and hands the last
result back once attempts are exhausted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from brokerhooks.core.logging import get_logger

logger = get_logger("resilience.retry")

Sleep = Callable[[float], Awaitable[None]]


def is_retryable_status(status_code: int | None) -> bool:
    """
    Classify an HTTP outcome.

    Returns True for:
    - None (connection error / timeout)
    - 5xx server errors
    - 429 rate limiting
    """
    if status_code is None:
        return True
    return status_code >= 500 or status_code == 429


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retrying after 0-indexed ``attempt``: base * 2**attempt."""
    return base_delay * (2**attempt)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    result = retry_state.outcome.result() if retry_state.outcome else None
    logger.warning(
        f"Retrying delivery in {delay:.1f}s (attempt {retry_state.attempt_number} failed: {result})"
    )


def _return_last_result(retry_state: RetryCallState) -> Any:
    return retry_state.outcome.result() if retry_state.outcome else None


def delivery_retrying(
    should_retry: Callable[[Any], bool],
    max_retries: int = 3,
    base_delay: float = 1.0,
    first_attempt: int = 0,
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    """
    Build the bounded retry loop for one endpoint's delivery chain.

    Starting from 0-indexed ``first_attempt``, at most
    ``max_retries - first_attempt`` retries follow the first try, waiting
    ``base_delay * 2**attempt`` before each (1s, 2s, 4s with the defaults).
    """
    remaining = max(max_retries - first_attempt, 0)
    return AsyncRetrying(
        retry=retry_if_result(should_retry),
        wait=wait_exponential(multiplier=backoff_delay(base_delay, first_attempt), exp_base=2, min=0),
        stop=stop_after_attempt(remaining + 1),
        sleep=sleep,
        before_sleep=_log_before_sleep,
        retry_error_callback=_return_last_result,
        reraise=True,
    )
