"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - @with_retry_async decorator: Retry with jitter for transient failures
    - SingleFlight: Shared in-flight operations (promise memoization)
"""

from .retry import (
    DEFAULT_RETRY,
    NO_RETRY,
    RetryConfig,
    with_retry_async,
)
from .single_flight import SingleFlight

__all__ = [
    # Retry
    "RetryConfig",
    "with_retry_async",
    "DEFAULT_RETRY",
    "NO_RETRY",
    # Single flight
    "SingleFlight",
]
