"""
CSV ingestion with automatic header mapping.

Headers are matched against English and German synonym lists for five
logical fields. If neither name column can be found, parsing stops and the
raw headers plus a few sample rows are returned so that an operator can
supply the mapping; the same document is then re-processed with
process_with_mapping().
"""

import csv
import io
import logging
import unicodedata
from typing import Dict, List, Optional, Sequence, Tuple

from core.errors.exceptions import ValidationError
from core.security.exceptions import DocumentFormatError
from core.security.validators import validate_user
from provisioning.ids import generate_user_id_from_email, normalize_institutional_id
from provisioning.models import CSV_FIELDS, CsvParseResult, FieldMapping, ParseResult, UserRecord, UserType

logger = logging.getLogger(__name__)

DELIMITERS = ",;"
SAMPLE_ROW_COUNT = 3
MIN_PARTIAL_MATCH_LENGTH = 3

FIELD_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "first_name": (
        "firstname", "first_name", "first name", "vorname", "givenname", "given_name",
        "given name", "prename", "vname", "fn", "given", "christian_name", "rufname",
    ),
    "last_name": (
        "lastname", "last_name", "last name", "nachname", "surname", "family_name",
        "family name", "familyname", "familienname", "ln", "family", "sn",
    ),
    "email": (
        "email", "e-mail", "e_mail", "emailaddress", "email_address", "email address",
        "mail", "emailadresse", "e-mailadresse", "kontakt",
    ),
    "user_type": (
        "usertype", "user_type", "user type", "type", "typ", "role", "rolle", "function",
        "funktion", "position", "status", "benutzertyp", "art", "category", "kategorie",
        "jobtitle", "job_title", "job title", "title", "titel",
    ),
    "id": (
        "id", "schild_id", "schildid", "kennung", "identifier", "personalnummer",
    ),
}

TEACHER_KEYWORDS = (
    "teacher", "lehrer", "lehrerin", "staff", "faculty", "educator", "instructor",
    "professor", "dozent", "dozentin", "lehrkraft", "pädagoge", "pädagogin",
)

STUDENT_KEYWORDS = (
    "student", "schüler", "schülerin", "schueler", "schuelerin", "pupil", "learner",
    "lernender", "lernende", "auszubildender", "auszubildende", "azubi",
    "teilnehmer", "teilnehmerin",
)

MISSING_EMAIL_WARNING = "No email column found; email addresses must be supplied manually"


def _fold(value: str) -> str:
    """Lower-case and strip diacritics (ä -> a, ß -> ss)."""
    decomposed = unicodedata.normalize("NFKD", value.replace("ß", "ss").replace("ẞ", "ss"))
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def normalize_header(value: str) -> str:
    return "".join(c for c in _fold(value.strip()) if c.isascii() and c.isalnum())


_NORMALIZED_SYNONYMS = {
    name: tuple(normalize_header(s) for s in synonyms) for name, synonyms in FIELD_SYNONYMS.items()
}
_TEACHER_FOLDED = tuple(_fold(k) for k in TEACHER_KEYWORDS)
_STUDENT_FOLDED = tuple(_fold(k) for k in STUDENT_KEYWORDS)


def header_matches(header: str, synonyms: Sequence[str]) -> bool:
    """Exact match, or containment either way when both sides are long enough."""
    normalized = normalize_header(header)
    if not normalized:
        return False
    for synonym in synonyms:
        if normalized == synonym:
            return True
        if (
            len(normalized) >= MIN_PARTIAL_MATCH_LENGTH
            and len(synonym) >= MIN_PARTIAL_MATCH_LENGTH
            and (synonym in normalized or normalized in synonym)
        ):
            return True
    return False


def map_headers(headers: Sequence[str]) -> Dict[str, int]:
    """
    Assign headers to logical fields.

    Each header is tested against the fields in CSV_FIELDS order and goes to
    the first unassigned field it matches. No column is used twice.
    """
    columns: Dict[str, int] = {}
    for index, header in enumerate(headers):
        for name in CSV_FIELDS:
            if name in columns:
                continue
            if header_matches(header, _NORMALIZED_SYNONYMS[name]):
                columns[name] = index
                break
    return columns


def detect_user_type(value: str) -> Optional[UserType]:
    folded = _fold(value.strip())
    if not folded:
        return None
    if any(k in folded for k in _TEACHER_FOLDED):
        return UserType.TEACHER
    if any(k in folded for k in _STUDENT_FOLDED):
        return UserType.STUDENT
    return None


def detect_delimiter(header_line: str) -> str:
    try:
        return csv.Sniffer().sniff(header_line, delimiters=DELIMITERS).delimiter
    except csv.Error:
        return ","


def _is_blank(row: Sequence[str]) -> bool:
    return not any(cell.strip() for cell in row)


def _read_rows(text: str) -> Tuple[List[str], List[Tuple[int, List[str]]]]:
    """Return (headers, [(line_number, row), ...]) with blank rows removed."""
    text = text.lstrip("\ufeff")
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise DocumentFormatError("CSV file must contain a header row and at least one data row")

    reader = csv.reader(io.StringIO(text), delimiter=detect_delimiter(lines[0]))
    headers: Optional[List[str]] = None
    rows: List[Tuple[int, List[str]]] = []
    for row in reader:
        if _is_blank(row):
            continue
        cells = [cell.strip() for cell in row]
        if headers is None:
            headers = cells
        else:
            rows.append((reader.line_num, cells))

    if headers is None or not rows:
        raise DocumentFormatError("CSV file must contain a header row and at least one data row")
    return headers, rows


def _check_mapping(mapping: FieldMapping, headers: Sequence[str]) -> None:
    unknown = set(mapping.columns) - set(CSV_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown mapping fields: {', '.join(sorted(unknown))}")
    indexes = list(mapping.columns.values())
    if len(indexes) != len(set(indexes)):
        raise ValidationError("Mapping assigns the same column to more than one field")
    for name, index in mapping.columns.items():
        if not 0 <= index < len(headers):
            raise ValidationError(f"Mapping for {name} points to column {index}, outside the header")


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


def _build_rows(
    rows: Sequence[Tuple[int, List[str]]], mapping: FieldMapping
) -> ParseResult:
    result = ParseResult()
    if "email" not in mapping.columns:
        result.warnings.append(MISSING_EMAIL_WARNING)

    for position, (line_number, row) in enumerate(rows):
        first_name = _cell(row, mapping.index_of("first_name"))
        last_name = _cell(row, mapping.index_of("last_name"))
        if not first_name and not last_name:
            result.warnings.append(f"Row {line_number}: no name found, skipped")
            continue

        email = _cell(row, mapping.index_of("email"))
        user_type = detect_user_type(_cell(row, mapping.index_of("user_type"))) or UserType.TEACHER

        raw_id = _cell(row, mapping.index_of("id"))
        if raw_id:
            institutional_id = normalize_institutional_id(raw_id)
        elif email:
            institutional_id = generate_user_id_from_email(email)
        else:
            institutional_id = f"{user_type.value}-{line_number}"

        validation = validate_user(
            {
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "user_type": user_type.value,
                "institutional_id": institutional_id,
                "class_label": None,
            }
        )
        if not validation.is_valid:
            result.warnings.append(f"Row {line_number}: {'; '.join(validation.errors)}")
            continue

        fields = validation.fields
        result.users.append(
            UserRecord(
                id=f"{user_type.value}-{position}",
                first_name=fields["first_name"],
                last_name=fields["last_name"],
                email=fields.get("email") or "",
                user_type=user_type,
                institutional_id=fields["institutional_id"],
            )
        )

    if not result.users:
        raise DocumentFormatError("no valid user data found")
    return result


def parse_csv_document(text: str) -> CsvParseResult:
    """
    Parse CSV text using automatic header mapping.

    Raises:
        DocumentFormatError: Fewer than a header and one data row, or no
            usable rows after mapping
    """
    headers, rows = _read_rows(text)
    mapping = FieldMapping(
        columns=map_headers(headers),
        headers=headers,
        sample_rows=[row for _, row in rows[:SAMPLE_ROW_COUNT]],
    )

    if not mapping.has_name:
        logger.info(
            "CSV headers could not be mapped automatically",
            extra={"warnings_count": 0, "document_format": "csv"},
        )
        return CsvParseResult(mapping=mapping, needs_manual_mapping=True)

    parsed = _build_rows(rows, mapping)
    logger.info(
        "Parsed CSV document",
        extra={
            "records_parsed": len(parsed.users),
            "warnings_count": len(parsed.warnings),
            "document_format": "csv",
        },
    )
    return CsvParseResult(users=parsed.users, warnings=parsed.warnings, mapping=mapping)


def process_with_mapping(text: str, mapping: FieldMapping) -> CsvParseResult:
    """
    Re-process a document with a resolved (usually operator supplied) mapping.

    Raises:
        ValidationError: Mapping reuses a column or points outside the header
        DocumentFormatError: No usable rows
    """
    headers, rows = _read_rows(text)
    _check_mapping(mapping, headers)
    resolved = FieldMapping(
        columns=dict(mapping.columns),
        headers=headers,
        sample_rows=[row for _, row in rows[:SAMPLE_ROW_COUNT]],
    )
    parsed = _build_rows(rows, resolved)
    return CsvParseResult(users=parsed.users, warnings=parsed.warnings, mapping=resolved)


def mapping_report(mapping: FieldMapping) -> str:
    """Human-readable summary of mapped and unmapped columns."""
    lines = ["Field mapping:"]
    for name, index in mapping.columns.items():
        header = mapping.headers[index] if 0 <= index < len(mapping.headers) else "?"
        lines.append(f'  - {name}: "{header}"')

    unmapped = mapping.unmapped_headers
    if unmapped:
        lines.append("")
        lines.append("Unmapped columns:")
        lines.extend(f'  - "{header}"' for header in unmapped)
    return "\n".join(lines)


__all__ = [
    "FIELD_SYNONYMS",
    "STUDENT_KEYWORDS",
    "TEACHER_KEYWORDS",
    "detect_delimiter",
    "detect_user_type",
    "header_matches",
    "map_headers",
    "mapping_report",
    "normalize_header",
    "parse_csv_document",
    "process_with_mapping",
]
