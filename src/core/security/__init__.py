"""
Security validation module.

Provides input validation and sanitization for untrusted identity data.

Components:
    - validate_email / validate_name / validate_institutional_id /
      validate_class_label / validate_url / sanitize_filename: field validators
    - validate_user: composite record validator
    - validate_provider_config: identity provider settings check
    - inspect_document / sanitize_document: XML security gate
    - log_security_event: structured security event logging
"""

from core.security.document_gate import (
    DocumentLimits,
    enforce_document_security,
    inspect_document,
    sanitize_document,
)
from core.security.events import SecurityEventType, Severity, log_security_event
from core.security.exceptions import DocumentFormatError, DocumentSecurityError
from core.security.validators import (
    USER_TYPES,
    SecurityValidationResult,
    sanitize_filename,
    sanitize_free_text,
    strip_control_characters,
    validate_class_label,
    validate_email,
    validate_institutional_id,
    validate_name,
    validate_provider_config,
    validate_url,
    validate_user,
)

__all__ = [
    # Validators
    "SecurityValidationResult",
    "USER_TYPES",
    "validate_email",
    "validate_name",
    "validate_institutional_id",
    "validate_class_label",
    "validate_url",
    "validate_user",
    "validate_provider_config",
    "sanitize_filename",
    "sanitize_free_text",
    "strip_control_characters",
    # Document gate
    "DocumentLimits",
    "inspect_document",
    "sanitize_document",
    "enforce_document_security",
    # Events
    "SecurityEventType",
    "Severity",
    "log_security_event",
    # Exceptions
    "DocumentSecurityError",
    "DocumentFormatError",
]
