"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- ProvisioningError hierarchy for typed exceptions
- Classification utilities for error handling
- HTTP transport error classifier
"""

from core.errors.classifiers import (
    RETRYABLE_STATUSES,
    HttpErrorClassifier,
    is_retryable_status,
    parse_retry_after,
)
from core.errors.exceptions import (
    AuthError,
    AuthorizationError,
    ConnectionError,
    DirectoryConflictError,
    DirectoryError,
    # Enums
    ErrorCategory,
    PermanentError,
    # Base classes
    ProvisioningError,
    ServerError,
    # Transient errors
    ThrottlingError,
    TimeoutError,
    TransientError,
    ValidationError,
    classify_exception,
    classify_http_status,
    # Classification utilities
    is_retryable_error,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "ProvisioningError",
    "AuthError",
    "TransientError",
    "PermanentError",
    # Transient errors
    "ThrottlingError",
    "ServerError",
    "TimeoutError",
    "ConnectionError",
    # Permanent errors
    "ValidationError",
    "AuthorizationError",
    "DirectoryError",
    "DirectoryConflictError",
    # Classification utilities
    "is_retryable_error",
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
    # HTTP classifier
    "RETRYABLE_STATUSES",
    "HttpErrorClassifier",
    "is_retryable_status",
    "parse_retry_after",
]
