"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Any, Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 408/429/5xx responses)
        AUTH: Authentication failures requiring credential refresh or a new login
              (e.g., 401 errors, expired or rejected tokens)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 4xx validation errors, unsafe documents, conflicts)
        UNKNOWN: Unclassified errors, never retried automatically
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class AuthenticatedTransport(Protocol):
    """
    Protocol for objects able to issue bearer-authenticated requests.

    Implemented by core.oauth2.AuthSession; admin clients depend on this
    protocol so they can be exercised with fakes in tests.
    """

    async def authenticated_request(self, method: str, url: str, **kwargs: Any) -> Any:
        """
        Send a request carrying the current access token.

        Raises:
            OAuth2Error: If no valid session exists or refresh fails
            TransientError: If the transport exhausted its retries
        """
        ...


__all__ = [
    "AuthenticatedTransport",
    "ErrorCategory",
]
