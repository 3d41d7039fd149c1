"""
HTTP transport module.

Components:
    - send_request: request with timeout and transient retry
    - HttpResponse: fully-read response
    - create_session: pooled aiohttp ClientSession factory
"""

from core.http.client import (
    DEFAULT_TIMEOUT_SECONDS,
    HttpResponse,
    create_session,
    send_request,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "HttpResponse",
    "create_session",
    "send_request",
]
