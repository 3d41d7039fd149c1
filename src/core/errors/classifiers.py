"""
Centralized error classification for HTTP transport operations.

Maps aiohttp/asyncio exceptions and HTTP status codes onto the typed
ProvisioningError hierarchy so retry decisions are made in one place.
"""

import asyncio

import aiohttp

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    DirectoryConflictError,
    DirectoryError,
    ProvisioningError,
    ServerError,
    ThrottlingError,
    TimeoutError,
    wrap_exception,
)

# Statuses the transport retries; every other 4xx is terminal.
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds. HTTP dates are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or status >= 500


class HttpErrorClassifier:
    """
    Classify transport failures into typed errors.

    Used by core.http.client for network-level exceptions and retryable
    statuses, and by admin clients for terminal non-2xx responses.
    """

    @staticmethod
    def classify_transport_error(error: Exception, url: str = "") -> ProvisioningError:
        """Map an aiohttp or asyncio exception to a typed transient error."""
        context = {"url": url} if url else {}

        if isinstance(error, ProvisioningError):
            return error

        if isinstance(error, asyncio.TimeoutError | aiohttp.ServerTimeoutError):
            return TimeoutError(f"Request timed out: {url}", cause=error, context=context)

        if isinstance(error, aiohttp.ClientError | OSError):
            return ConnectionError(
                f"Connection failed: {type(error).__name__}", cause=error, context=context
            )

        return wrap_exception(error, context=context)

    @staticmethod
    def error_for_retryable_status(
        status: int, url: str = "", retry_after: str | None = None
    ) -> ProvisioningError:
        """Build the error raised for a retryable status (408, 429, 5xx)."""
        context = {"url": url, "status": status}
        if status == 429:
            return ThrottlingError(
                "HTTP 429: rate limited",
                retry_after=parse_retry_after(retry_after),
                context=context,
            )
        return ServerError(f"HTTP {status}", status=status, context=context)

    @staticmethod
    def error_for_response(status: int, body: str, operation: str) -> ProvisioningError:
        """Build the error raised when an admin call ends with a terminal status."""
        message = f"{operation} failed: HTTP {status}: {body[:200]}"
        if status == 401:
            return AuthError(message, context={"status": status})
        if status == 409:
            return DirectoryConflictError(message, status=status, body=body)
        if is_retryable_status(status):
            return ServerError(message, status=status)
        return DirectoryError(message, status=status, body=body)


__all__ = [
    "RETRYABLE_STATUSES",
    "HttpErrorClassifier",
    "is_retryable_status",
    "parse_retry_after",
]
