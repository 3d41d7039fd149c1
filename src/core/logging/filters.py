"""Log filters for secret redaction."""

import logging
import re
from typing import Any

REDACTED = "[REDACTED]"

# Keys whose values never reach a log sink
SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "code",
        "code_verifier",
        "client_secret",
        "password",
        "secret",
        "authorization",
    }
)

_SENSITIVE_PATTERNS = (
    # Bearer credentials in headers or error bodies
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1" + REDACTED),
    # key=value pairs in query strings and form bodies
    (
        re.compile(
            r"\b(access_token|refresh_token|id_token|code_verifier|code|token|"
            r"client_secret|password|secret)=[^&\s\"']*",
            re.IGNORECASE,
        ),
        r"\1=" + REDACTED,
    ),
    # "key": "value" pairs in JSON bodies
    (
        re.compile(
            r"(\"(?:access_token|refresh_token|id_token|code_verifier|password|"
            r"client_secret)\"\s*:\s*\")[^\"]*(\")",
            re.IGNORECASE,
        ),
        r"\1" + REDACTED + r"\2",
    ),
)


def redact_text(text: str) -> str:
    """Replace tokens, verifiers and passwords in free text."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_value(key: str, value: Any) -> Any:
    """Redact a structured field by key, or scrub it when it is text."""
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {k: redact_value(str(k), v) for k, v in value.items()}
    return value


class RedactionFilter(logging.Filter):
    """
    Scrub credentials from log records before any handler formats them.

    The rendered message is rewritten in place (args are folded in first), and
    extra fields with sensitive names are replaced with a marker.

    Usage:
        handler.addFilter(RedactionFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        record.msg = redact_text(message)
        record.args = None

        for key in list(record.__dict__):
            if key.lower() in SENSITIVE_KEYS:
                record.__dict__[key] = REDACTED
        return True
