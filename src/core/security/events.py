"""
Security event logging.

Security-relevant incidents (blocked documents, CSRF mismatches, refused
tokens) are emitted as structured records on the ``security`` logger so they
can be routed to a dedicated sink.
"""

import logging
from enum import Enum
from typing import Any

from core.logging.filters import redact_value

security_logger = logging.getLogger("security")


class SecurityEventType(str, Enum):
    FILE_UPLOAD_BLOCKED = "file_upload_blocked"
    XXE_ATTEMPT_DETECTED = "xxe_attempt_detected"
    ENTITY_EXPANSION_DETECTED = "entity_expansion_detected"
    INVALID_FILE_TYPE = "invalid_file_type"
    FILE_SIZE_EXCEEDED = "file_size_exceeded"
    AUTHENTICATION_FAILURE = "authentication_failure"
    TOKEN_VALIDATION_FAILED = "token_validation_failed"
    INSECURE_CONTEXT = "insecure_context"
    CONFIGURATION_ERROR = "configuration_error"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


def log_security_event(
    event_type: SecurityEventType,
    message: str,
    severity: Severity = Severity.MEDIUM,
    **details: Any,
) -> None:
    """
    Emit a security event.

    Args:
        event_type: Event classification
        message: Human-readable description
        severity: Maps to the log level (low=INFO ... critical=CRITICAL)
        **details: Structured details; credential-like keys are redacted
    """
    security_logger.log(
        _LEVELS[severity],
        "Security event: %s",
        message,
        extra={
            "security_event": event_type.value,
            "severity": severity.value,
            "details": {k: redact_value(k, v) for k, v in details.items()},
        },
    )


__all__ = ["SecurityEventType", "Severity", "log_security_event", "security_logger"]
