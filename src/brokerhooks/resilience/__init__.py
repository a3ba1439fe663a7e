"""
Resilience Layer for brokerhooks.

Provides the retry policy used by outbound webhook delivery.
"""

from .retry import backoff_delay, delivery_retrying, is_retryable_status

__all__ = [
    "backoff_delay",
    "delivery_retrying",
    "is_retryable_status",
]
