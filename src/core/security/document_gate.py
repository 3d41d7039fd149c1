"""
Security gate for untrusted XML documents.

Runs before any structural parsing and fails closed. Detection and
sanitization are separate steps: inspect_document() reports hard errors
(oversize input, external-entity declarations, entity-expansion bombs,
entity markers smuggled in CDATA) and soft warnings, and only a document
without errors is sanitized. The sanitized text is the only text a parser may
consume.
"""

import logging
import re
from dataclasses import dataclass

from core.security.events import SecurityEventType, Severity, log_security_event
from core.security.exceptions import DocumentSecurityError
from core.security.validators import SecurityValidationResult

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024
MAX_ELEMENT_DEPTH = 50
MAX_ENTITY_REFERENCES = 1000
MAX_RECORDS = 10_000

XXE_PATTERNS = (
    re.compile(r"<!ENTITY", re.IGNORECASE),
    re.compile(r"<!DOCTYPE[^>]*\[", re.IGNORECASE),
    re.compile(r"SYSTEM\s+[\"']", re.IGNORECASE),
    re.compile(r"PUBLIC\s+[\"']", re.IGNORECASE),
)
ENTITY_REFERENCE = re.compile(r"&\w+;")
TAG = re.compile(r"<[^>]*>")
CDATA_SECTION = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
CDATA_MARKERS = ("<!ENTITY", "<!DOCTYPE", "SYSTEM", "PUBLIC")

DOCTYPE_DECLARATION = re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE)
PROCESSING_INSTRUCTION = re.compile(r"<\?(?!xml[\s?])[^>]*\?>", re.IGNORECASE)
ANY_ENTITY = re.compile(r"&[#\w.\-]+;")
PREDEFINED_ENTITIES = frozenset({"&lt;", "&gt;", "&amp;", "&quot;", "&apos;"})


@dataclass(frozen=True)
class DocumentLimits:
    """Resource limits applied to uploaded documents."""

    max_document_bytes: int = MAX_DOCUMENT_BYTES
    max_element_depth: int = MAX_ELEMENT_DEPTH
    max_entity_references: int = MAX_ENTITY_REFERENCES
    max_records: int = MAX_RECORDS


def inspect_document(text: str, limits: DocumentLimits | None = None) -> SecurityValidationResult:
    """
    Screen raw XML text for denial-of-service and external-entity attacks.

    Returns:
        Result whose sanitized_value holds the sanitized document when valid
    """
    limits = limits or DocumentLimits()
    errors: list[str] = []
    warnings: list[str] = []

    size = len(text.encode("utf-8"))
    if size > limits.max_document_bytes:
        errors.append("XML file exceeds maximum allowed size")
        log_security_event(
            SecurityEventType.FILE_SIZE_EXCEEDED,
            "Document exceeds maximum size",
            Severity.MEDIUM,
            document_bytes=size,
            limit=limits.max_document_bytes,
        )

    if any(pattern.search(text) for pattern in XXE_PATTERNS):
        errors.append("XML External Entity (XXE) patterns detected")
        log_security_event(
            SecurityEventType.XXE_ATTEMPT_DETECTED,
            "External entity declaration in uploaded document",
            Severity.HIGH,
        )

    entity_count = len(ENTITY_REFERENCE.findall(text))
    if entity_count > limits.max_entity_references:
        errors.append("Excessive entity references detected (potential XML bomb)")
        log_security_event(
            SecurityEventType.ENTITY_EXPANSION_DETECTED,
            "Entity reference count above limit",
            Severity.HIGH,
            entity_references=entity_count,
            limit=limits.max_entity_references,
        )
    elif entity_count:
        warnings.append("Entity references detected - will be stripped for security")

    for content in CDATA_SECTION.findall(text):
        if any(marker in content for marker in CDATA_MARKERS):
            errors.append("Suspicious content in CDATA section")
            log_security_event(
                SecurityEventType.XXE_ATTEMPT_DETECTED,
                "Entity markers inside CDATA section",
                Severity.HIGH,
            )
            break

    if len(TAG.findall(text)) > limits.max_element_depth * 100:
        warnings.append("Complex XML structure detected - performance may be affected")

    if errors:
        return SecurityValidationResult(is_valid=False, errors=errors, warnings=warnings)

    return SecurityValidationResult(
        is_valid=True,
        warnings=warnings,
        sanitized_value=sanitize_document(text),
    )


def _encode_cdata(match: re.Match) -> str:
    return (
        match.group(1)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def sanitize_document(text: str) -> str:
    """
    Neutralize a screened document.

    Strips DOCTYPE declarations, processing instructions other than the XML
    declaration and entity references other than the five predefined ones,
    then replaces CDATA sections with their HTML-encoded content.
    """
    sanitized = DOCTYPE_DECLARATION.sub("", text)
    sanitized = PROCESSING_INSTRUCTION.sub("", sanitized)
    sanitized = ANY_ENTITY.sub(
        lambda m: m.group(0) if m.group(0) in PREDEFINED_ENTITIES else "", sanitized
    )
    return CDATA_SECTION.sub(_encode_cdata, sanitized)


def enforce_document_security(
    text: str, limits: DocumentLimits | None = None
) -> tuple[str, list[str]]:
    """
    Gate a document, raising instead of returning a failed result.

    Returns:
        Tuple of (sanitized_text, warnings)

    Raises:
        DocumentSecurityError: Document violates a security limit
    """
    result = inspect_document(text, limits)
    if not result.is_valid:
        logger.warning(
            "Document rejected by security gate",
            extra={"error": "; ".join(result.errors)},
        )
        raise DocumentSecurityError(
            f"Security validation failed: {', '.join(result.errors)}",
            errors=result.errors,
            warnings=result.warnings,
        )
    return result.sanitized_value or "", result.warnings


__all__ = [
    "DocumentLimits",
    "MAX_DOCUMENT_BYTES",
    "MAX_ELEMENT_DEPTH",
    "MAX_ENTITY_REFERENCES",
    "MAX_RECORDS",
    "enforce_document_security",
    "inspect_document",
    "sanitize_document",
]
