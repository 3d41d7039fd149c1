"""
Domain models for account provisioning.

Contains:
- UserRecord: canonical, immutable user produced by the ingestion parsers
- FieldMapping: CSV column assignment (automatic or supplied by an operator)
- ParseResult / CsvParseResult: ingestion outputs with non-blocking warnings
- SyncResult: per-record outcome of the sync engine
- DirectoryUser: Pydantic schema of a user as listed by the directory admin API
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserType(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class SyncableAttribute(str, Enum):
    """Record attributes an operator can select for account creation."""

    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    INSTITUTIONAL_ID = "institutional_id"
    CLASS_LABEL = "class_label"
    USER_TYPE = "user_type"


DEFAULT_SYNC_ATTRIBUTES = (
    SyncableAttribute.FIRST_NAME,
    SyncableAttribute.LAST_NAME,
    SyncableAttribute.EMAIL,
    SyncableAttribute.INSTITUTIONAL_ID,
)


@dataclass(frozen=True)
class UserRecord:
    """
    Canonical user built from one source row or element.

    first_name and last_name are non-empty after sanitization; email is either
    empty or well-formed; id is unique within one ingestion batch.
    """

    id: str
    first_name: str
    last_name: str
    email: str
    user_type: UserType
    institutional_id: str
    class_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["user_type"] = self.user_type.value
        return data

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# Logical CSV fields in matching order
CSV_FIELDS = ("first_name", "last_name", "email", "user_type", "id")


@dataclass
class FieldMapping:
    """
    Assignment of logical fields to CSV column indexes.

    Attributes:
        columns: Logical field name -> zero-based column index
        headers: Raw header row
        sample_rows: Up to three non-blank data rows for manual mapping
    """

    columns: Dict[str, int] = field(default_factory=dict)
    headers: List[str] = field(default_factory=list)
    sample_rows: List[List[str]] = field(default_factory=list)

    @classmethod
    def manual(cls, headers: List[str], **columns: int) -> "FieldMapping":
        """Mapping supplied by an operator, e.g. manual(headers, first_name=0, last_name=2)."""
        unknown = set(columns) - set(CSV_FIELDS)
        if unknown:
            raise ValueError(f"Unknown mapping fields: {sorted(unknown)}")
        return cls(columns=dict(columns), headers=list(headers))

    def index_of(self, name: str) -> Optional[int]:
        return self.columns.get(name)

    @property
    def has_name(self) -> bool:
        return "first_name" in self.columns or "last_name" in self.columns

    @property
    def unmapped_headers(self) -> List[str]:
        used = set(self.columns.values())
        return [h for i, h in enumerate(self.headers) if i not in used]


@dataclass
class ParseResult:
    users: List[UserRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def teachers(self) -> List[UserRecord]:
        return [u for u in self.users if u.user_type is UserType.TEACHER]

    @property
    def students(self) -> List[UserRecord]:
        return [u for u in self.users if u.user_type is UserType.STUDENT]


@dataclass
class CsvParseResult(ParseResult):
    """
    CSV ingestion output.

    When needs_manual_mapping is set, users is empty and mapping carries the
    headers and sample rows for an external mapping step; the caller then
    re-processes the same document with process_with_mapping().
    """

    mapping: FieldMapping = field(default_factory=FieldMapping)
    needs_manual_mapping: bool = False


@dataclass(frozen=True)
class SyncResult:
    record_id: str
    success: bool
    already_existed: bool = False
    error: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.success and not self.already_existed


@dataclass
class SyncSummary:
    """Aggregate counts over a batch of SyncResults."""

    total: int = 0
    created: int = 0
    already_existed: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results: List[SyncResult]) -> "SyncSummary":
        return cls(
            total=len(results),
            created=sum(1 for r in results if r.created),
            already_existed=sum(1 for r in results if r.success and r.already_existed),
            failed=sum(1 for r in results if not r.success),
        )


class DirectoryUser(BaseModel):
    """User representation returned by the directory admin API."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    username: str = ""
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    enabled: bool = True
    email_verified: bool = Field(default=False, alias="emailVerified")
    attributes: Dict[str, List[str]] = Field(default_factory=dict)

    def attribute(self, name: str) -> Optional[str]:
        values = self.attributes.get(name) or []
        return values[0] if values else None


__all__ = [
    "CSV_FIELDS",
    "CsvParseResult",
    "DEFAULT_SYNC_ATTRIBUTES",
    "DirectoryUser",
    "FieldMapping",
    "ParseResult",
    "SyncResult",
    "SyncSummary",
    "SyncableAttribute",
    "UserRecord",
    "UserType",
]
