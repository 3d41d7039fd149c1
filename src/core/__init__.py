"""
Core library: Reusable, directory-agnostic components.

Modules:
    errors      - Error classification and exception hierarchy
    resilience  - Retry with backoff, single-flight memoization
    http        - aiohttp request helper with typed failures
    logging     - Structured JSON logging with batch/stage context and redaction
    security    - Field validators, document security gate, security events
    oauth2      - Authorization-code + PKCE public client and session lifecycle

Design Principles:
    - No knowledge of record formats or the directory's user schema
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import AuthenticatedTransport, ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "AuthenticatedTransport",
    "ErrorCategory",
]
