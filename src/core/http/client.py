"""
Core HTTP client using aiohttp.

Every outbound call of the toolkit goes through send_request(), which adds:
- a per-request timeout enforced by aiohttp's ClientTimeout (cancellation)
- capped exponential backoff with jitter for network failures, 408, 429 and 5xx
- typed errors once retries are exhausted (TimeoutError, ConnectionError,
  ServerError, ThrottlingError), distinguishable from validation errors

Other 4xx responses are terminal and handed back to the caller untouched.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from core.errors.classifiers import HttpErrorClassifier, is_retryable_status
from core.resilience.retry import DEFAULT_RETRY, RetryConfig, with_retry_async

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class HttpResponse:
    """Fully-read HTTP response with status, headers and body."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON. Empty bodies decode to None."""
        if not self.body:
            return None
        return json.loads(self.body)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


async def _send_once(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    timeout: float,
    **kwargs: Any,
) -> HttpResponse:
    try:
        async with session.request(
            method,
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            **kwargs,
        ) as response:
            body = await response.read()
            headers = dict(response.headers)
    except Exception as e:
        raise HttpErrorClassifier.classify_transport_error(e, url) from e

    if is_retryable_status(response.status):
        raise HttpErrorClassifier.error_for_retryable_status(
            response.status, url, headers.get("Retry-After")
        )

    return HttpResponse(status=response.status, body=body, headers=headers, url=url)


async def send_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_config: RetryConfig | None = None,
    **kwargs: Any,
) -> HttpResponse:
    """
    Send an HTTP request with timeout and transient-failure retry.

    Args:
        session: aiohttp ClientSession (caller manages lifecycle)
        method: HTTP method
        url: Absolute URL
        timeout: Per-attempt total timeout in seconds
        retry_config: Backoff policy (defaults to DEFAULT_RETRY, 3 attempts)
        **kwargs: Passed to aiohttp (headers, json, data, params)

    Returns:
        HttpResponse for any non-retryable status, including 4xx

    Raises:
        TimeoutError: Every attempt timed out
        ConnectionError: Every attempt failed at the network level
        ServerError: Last attempt returned 408 or 5xx
        ThrottlingError: Last attempt returned 429
    """
    config = retry_config or DEFAULT_RETRY

    @with_retry_async(config=config)
    async def _attempt() -> HttpResponse:
        return await _send_once(session, method, url, timeout, **kwargs)

    response = await _attempt()
    logger.debug(
        "HTTP %s %s -> %s",
        method,
        url,
        response.status,
        extra={"http_method": method, "status_code": response.status},
    )
    return response


def create_session(
    max_connections: int = 20,
    max_connections_per_host: int = 10,
    enable_ssl: bool = True,
    timeout_total: int = 300,
    timeout_connect: int = 30,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession with connection pooling and timeouts.

    The session-level timeout is an upper bound; send_request() applies its
    own per-request timeout on top.

    Example:
        async with create_session() as http:
            response = await send_request(http, "GET", url)

    Note:
        Caller is responsible for session lifecycle management.
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ssl=enable_ssl,
        ttl_dns_cache=300,
    )

    timeout = aiohttp.ClientTimeout(total=timeout_total, connect=timeout_connect)

    return aiohttp.ClientSession(connector=connector, timeout=timeout)


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "HttpResponse",
    "create_session",
    "send_request",
]
