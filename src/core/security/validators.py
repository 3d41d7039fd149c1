"""
Input validation and sanitization for untrusted identity data.

Every validator is a pure function that never raises: failures are reported
through SecurityValidationResult.is_valid and human-readable error strings,
and callers must branch on is_valid before trusting sanitized_value. Invalid
input is never coerced into a default.
"""

import ipaddress
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

# Field limits
MAX_EMAIL_LENGTH = 254  # RFC 5321
MAX_NAME_LENGTH = 100
MAX_INSTITUTIONAL_ID_LENGTH = 50
MAX_CLASS_LABEL_LENGTH = 20
MAX_URL_LENGTH = 2048
MAX_FILENAME_LENGTH = 255
MAX_REALM_LENGTH = 100
MAX_CLIENT_ID_LENGTH = 255

USER_TYPES = frozenset({"student", "teacher"})

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
# Latin letters incl. Latin-1 and Latin Extended-A diacritics
NAME_PATTERN = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿĀ-ž\s\-'.]+$")
INSTITUTIONAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
CLASS_LABEL_PATTERN = re.compile(r"^[A-Za-z0-9 _-]+$")

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
MARKUP_CHARS = re.compile(r"[<>'\"&]")

SUSPICIOUS_EMAIL_PATTERNS = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
)

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


@dataclass
class SecurityValidationResult:
    """
    Outcome of a validator.

    Attributes:
        is_valid: True when no errors were found
        errors: Ordered, de-duplicated error messages
        warnings: Ordered, de-duplicated warnings (never block)
        sanitized_value: Cleaned value, only trustworthy when is_valid
        fields: Per-field sanitized values (composite validators only)
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized_value: str | None = None
    fields: dict[str, str | None] = field(default_factory=dict)


def _result(
    errors: list[str],
    warnings: list[str] | None = None,
    sanitized: str | None = None,
    fields: dict[str, str | None] | None = None,
) -> SecurityValidationResult:
    errors = list(dict.fromkeys(errors))
    return SecurityValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=list(dict.fromkeys(warnings or [])),
        sanitized_value=sanitized,
        fields=fields or {},
    )


def strip_control_characters(value: str) -> str:
    return CONTROL_CHARS.sub("", value)


def sanitize_free_text(value: str) -> str:
    """Trim, drop control characters and HTML/XML special characters."""
    return MARKUP_CHARS.sub("", strip_control_characters(value.strip()))


def validate_email(value: Any) -> SecurityValidationResult:
    if not value or not isinstance(value, str):
        return _result(["Email is required and must be a string"])

    errors: list[str] = []
    if len(value) > MAX_EMAIL_LENGTH:
        errors.append(f"Email exceeds maximum length of {MAX_EMAIL_LENGTH} characters")

    sanitized = value.strip().lower()
    if not EMAIL_PATTERN.match(sanitized):
        errors.append("Invalid email format")

    if any(p.search(sanitized) for p in SUSPICIOUS_EMAIL_PATTERNS):
        errors.append("Email contains suspicious content")

    return _result(errors, sanitized=sanitized)


def validate_name(value: Any, field_name: str) -> SecurityValidationResult:
    if not value or not isinstance(value, str):
        return _result([f"{field_name} is required and must be a string"])

    errors: list[str] = []
    if len(value) > MAX_NAME_LENGTH:
        errors.append(f"{field_name} exceeds maximum length of {MAX_NAME_LENGTH} characters")

    sanitized = sanitize_free_text(value)
    if not sanitized:
        errors.append(f"{field_name} cannot be empty after sanitization")
    elif not NAME_PATTERN.match(sanitized):
        errors.append(f"{field_name} contains invalid characters")

    return _result(errors, sanitized=sanitized)


def validate_institutional_id(value: Any) -> SecurityValidationResult:
    if not value or not isinstance(value, str):
        return _result(["Institutional ID is required and must be a string"])

    errors: list[str] = []
    if len(value) > MAX_INSTITUTIONAL_ID_LENGTH:
        errors.append(
            f"Institutional ID exceeds maximum length of {MAX_INSTITUTIONAL_ID_LENGTH} characters"
        )

    sanitized = re.sub(r"[^\w-]", "", value.strip(), flags=re.ASCII)
    if not sanitized:
        errors.append("Institutional ID cannot be empty after sanitization")
    elif not INSTITUTIONAL_ID_PATTERN.match(sanitized):
        errors.append("Institutional ID contains invalid characters")

    return _result(errors, sanitized=sanitized)


def validate_class_label(value: Any) -> SecurityValidationResult:
    """Class labels are optional; an empty value is valid with no sanitized value."""
    if value is None or value == "":
        return _result([])
    if not isinstance(value, str):
        return _result(["Class must be a string"])

    errors: list[str] = []
    if len(value) > MAX_CLASS_LABEL_LENGTH:
        errors.append(
            f"Class name exceeds maximum length of {MAX_CLASS_LABEL_LENGTH} characters"
        )

    sanitized = sanitize_free_text(value)
    if sanitized and not CLASS_LABEL_PATTERN.match(sanitized):
        errors.append("Class name contains invalid characters")

    return _result(errors, sanitized=sanitized or None)


def _is_loopback(hostname: str) -> bool:
    if hostname in LOOPBACK_HOSTS:
        return True
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False


def validate_url(value: Any, field_name: str = "URL", production: bool = False) -> SecurityValidationResult:
    """
    Validate an http(s) URL.

    HTTPS is mandatory when production is True. Outside production, plain HTTP
    to a non-loopback host is accepted with a warning.
    """
    if not value or not isinstance(value, str):
        return _result([f"{field_name} is required and must be a string"])

    errors: list[str] = []
    warnings: list[str] = []
    if len(value) > MAX_URL_LENGTH:
        errors.append(f"{field_name} exceeds maximum length of {MAX_URL_LENGTH} characters")

    sanitized = value.strip()
    try:
        parsed = urlparse(sanitized)
        hostname = parsed.hostname or ""
    except ValueError:
        return _result(errors + [f"{field_name} is not a valid URL"], sanitized=sanitized)

    if parsed.scheme not in ("http", "https"):
        errors.append(f"{field_name} is not a valid URL")
    elif not hostname:
        errors.append(f"{field_name} must have a valid hostname")
    else:
        if production and parsed.scheme != "https":
            errors.append(f"{field_name} must use HTTPS in production")
        elif parsed.scheme == "http" and not _is_loopback(hostname):
            warnings.append(f"{field_name} uses HTTP - should use HTTPS in production")

    return _result(errors, warnings, sanitized=sanitized)


def sanitize_filename(value: Any) -> SecurityValidationResult:
    """Reduce a filename to [A-Za-z0-9._-], collapsing runs of replacement underscores."""
    if not value or not isinstance(value, str):
        return _result(["Filename is required and must be a string"])

    sanitized = re.sub(r"[^A-Za-z0-9._-]", "_", value.strip())
    sanitized = re.sub(r"_{2,}", "_", sanitized)[:MAX_FILENAME_LENGTH]
    if not sanitized.strip("._"):
        return _result(["Filename cannot be empty after sanitization"], sanitized=sanitized)
    return _result([], sanitized=sanitized)


def _get(record: Mapping[str, Any] | Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def validate_user(record: Mapping[str, Any] | Any, require_email: bool = False) -> SecurityValidationResult:
    """
    Validate every field of a user record and aggregate the outcome.

    Accepts a mapping or an object exposing first_name, last_name, email,
    user_type, institutional_id and class_label. An empty email is accepted
    unless require_email is set. The sanitized values land in ``fields``.
    """
    if record is None:
        return _result(["User record is required"])

    errors: list[str] = []
    warnings: list[str] = []
    fields: dict[str, str | None] = {}

    def absorb(name: str, result: SecurityValidationResult) -> None:
        if result.is_valid:
            fields[name] = result.sanitized_value
        errors.extend(result.errors)
        warnings.extend(result.warnings)

    email = _get(record, "email")
    if email or require_email:
        absorb("email", validate_email(email))
    else:
        fields["email"] = ""

    absorb("first_name", validate_name(_get(record, "first_name"), "First name"))
    absorb("last_name", validate_name(_get(record, "last_name"), "Last name"))
    absorb("institutional_id", validate_institutional_id(_get(record, "institutional_id")))

    user_type = _get(record, "user_type")
    user_type = getattr(user_type, "value", user_type)
    if user_type not in USER_TYPES:
        errors.append("User type must be either 'student' or 'teacher'")
    else:
        fields["user_type"] = user_type

    absorb("class_label", validate_class_label(_get(record, "class_label")))

    return _result(errors, warnings, fields=fields)


def validate_provider_config(
    url: Any,
    realm: Any,
    client_id: Any,
    redirect_uri: Any,
    production: bool = False,
) -> SecurityValidationResult:
    """Validate identity provider connection settings."""
    errors: list[str] = []
    warnings: list[str] = []
    fields: dict[str, str | None] = {}

    for name, value, label in (
        ("url", url, "Identity provider URL"),
        ("redirect_uri", redirect_uri, "Redirect URI"),
    ):
        result = validate_url(value, label, production=production)
        errors.extend(result.errors)
        warnings.extend(result.warnings)
        if result.is_valid:
            fields[name] = result.sanitized_value

    if not realm or not isinstance(realm, str):
        errors.append("Realm is required and must be a string")
    else:
        if len(realm) > MAX_REALM_LENGTH:
            errors.append(f"Realm exceeds maximum length of {MAX_REALM_LENGTH} characters")
        sanitized_realm = re.sub(r"[^\w-]", "", realm.strip(), flags=re.ASCII)
        if not sanitized_realm:
            errors.append("Realm cannot be empty after sanitization")
        elif sanitized_realm != realm.strip():
            warnings.append("Realm contained invalid characters that were removed")
        fields["realm"] = sanitized_realm

    if not client_id or not isinstance(client_id, str):
        errors.append("Client ID is required and must be a string")
    elif len(client_id) > MAX_CLIENT_ID_LENGTH:
        errors.append(f"Client ID exceeds maximum length of {MAX_CLIENT_ID_LENGTH} characters")
    else:
        fields["client_id"] = client_id.strip()

    return _result(errors, warnings, fields=fields)


__all__ = [
    "SecurityValidationResult",
    "USER_TYPES",
    "sanitize_filename",
    "sanitize_free_text",
    "strip_control_characters",
    "validate_class_label",
    "validate_email",
    "validate_institutional_id",
    "validate_name",
    "validate_provider_config",
    "validate_url",
    "validate_user",
]
