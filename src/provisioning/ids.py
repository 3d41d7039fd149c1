"""
Institutional identifiers.

The school information system issues 11-digit identifiers which are rendered
as ``ID-XXXXXX-XXXXX``. When an importer has no authoritative identifier a
stable synthetic one is derived from the email address.
"""

import re
from dataclasses import dataclass
from typing import Optional

from config.config import InstitutionalIdConfig

ID_PREFIX = "ID"
ID_DIGITS = 11
CANONICAL_ID_PATTERN = re.compile(r"^ID-\d{6}-\d{5}$")

_NON_DIGITS = re.compile(r"\D")
# Positional fallbacks produced by the parsers, e.g. "teacher-3"
_PLACEHOLDER_ID = re.compile(r"^(student|teacher)-\d+$")


def _render(digits: str) -> str:
    return f"{ID_PREFIX}-{digits[:6]}-{digits[6:]}"


def normalize_institutional_id(raw: str) -> str:
    """
    Render any identifier holding exactly 11 digits as ``ID-XXXXXX-XXXXX``.

    Other input is returned trimmed. Idempotent: a canonical ID normalizes to
    itself.
    """
    value = (raw or "").strip()
    digits = _NON_DIGITS.sub("", value)
    if len(digits) == ID_DIGITS:
        return _render(digits)
    return value


def djb2_hash(value: str) -> int:
    h = 5381
    for char in value:
        h = (h * 33 + ord(char)) & 0xFFFFFFFF
    return h


def generate_user_id_from_email(email: str) -> str:
    """Deterministic synthetic ID; equal emails (ignoring case) give equal IDs."""
    h = djb2_hash((email or "").strip().lower())
    digits = str(h).zfill(ID_DIGITS)[-ID_DIGITS:]
    return _render(digits)


def is_placeholder_id(value: str) -> bool:
    return bool(_PLACEHOLDER_ID.match((value or "").strip()))


@dataclass(frozen=True)
class InstitutionalIdPolicy:
    """
    Business rule for schools that must use real, issued identifiers.

    Which schools are affected and what counts as a real identifier is
    deployment configuration. With the default configuration nothing is
    enforced.
    """

    enforce_real_teacher_ids: bool = False
    real_id_pattern: str = r"^ID-\d{6}-\d{4,5}$"
    school_number_pattern: str = ""

    @classmethod
    def from_config(cls, config: InstitutionalIdConfig) -> "InstitutionalIdPolicy":
        return cls(
            enforce_real_teacher_ids=config.enforce_real_teacher_ids,
            real_id_pattern=config.real_id_pattern,
            school_number_pattern=config.school_number_pattern,
        )

    def requires_teacher_id(self, school_number: Optional[str]) -> bool:
        if not self.enforce_real_teacher_ids:
            return False
        if not self.school_number_pattern:
            return True
        return bool(school_number) and re.match(self.school_number_pattern, school_number) is not None

    def is_valid_institutional_id(self, value: Optional[str]) -> bool:
        candidate = (value or "").strip()
        if not candidate or is_placeholder_id(candidate):
            return False
        return re.match(self.real_id_pattern, normalize_institutional_id(candidate)) is not None

    def check(self, value: Optional[str], school_number: Optional[str]) -> Optional[str]:
        """Return an error message when the rule applies and the value fails it."""
        if self.requires_teacher_id(school_number) and not self.is_valid_institutional_id(value):
            return f"A real institutional ID is required, got {value!r}"
        return None


__all__ = [
    "CANONICAL_ID_PATTERN",
    "InstitutionalIdPolicy",
    "djb2_hash",
    "generate_user_id_from_email",
    "is_placeholder_id",
    "normalize_institutional_id",
]
