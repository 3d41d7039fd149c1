"""
XML ingestion for institutional exports.

Two shapes are understood:

Primary (IMS Enterprise style, as exported by SchILD-NRW):
    <enterprise>
      <person>
        <sourcedid><id>...</id></sourcedid>
        <name><n><given>..</given><family>..</family></n></name>
        <email>..</email>
        <institutionrole institutionroletype="faculty"/>   (teachers)
        <extension><x-schildnrw-grade>10A</x-schildnrw-grade></extension>
      </person>
    </enterprise>

Fallback (flat):
    <schild_export>
      <schueler><vorname/><nachname/><email/><klasse/><schild_id/></schueler>
      <lehrer>...</lehrer>
    </schild_export>

Documents pass the security gate before parsing, and the sanitized text is
parsed with defusedxml. Records that cannot be trusted are skipped with a
warning. Only security violations and malformed documents abort.
"""

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from xml.etree.ElementTree import Element

from defusedxml import ElementTree as SafeET
from defusedxml.common import DefusedXmlException
from defusedxml.ElementTree import ParseError as SafeParseError

from core.security.document_gate import DocumentLimits, enforce_document_security
from core.security.events import SecurityEventType, Severity, log_security_event
from core.security.exceptions import DocumentFormatError, DocumentSecurityError
from core.security.validators import strip_control_characters, validate_user
from provisioning.models import ParseResult, UserRecord, UserType

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 500

RECORD_ELEMENTS = frozenset(
    {
        "schild_export", "person", "schueler", "lehrer", "n", "given", "family",
        "sourcedid", "id", "email", "userid", "institutionrole", "institutionalrole",
        "group", "membership", "description", "long", "x-schildnrw-grade",
        "vorname", "nachname", "klasse", "schild_id",
    }
)

# Structural IMS Enterprise elements that carry no record data of their own
ENVELOPE_ELEMENTS = frozenset(
    {
        "enterprise", "properties", "datasource", "datetime", "target", "type",
        "extension", "source", "name", "fn", "nickname", "other", "partname",
        "prefix", "suffix", "demographics", "gender", "bday", "disability",
        "tel", "adr", "street", "locality", "region", "pcode", "country",
        "photo", "extref", "systemrole", "relationship", "label",
        "short", "full", "member", "idtype", "role", "status", "timeframe",
        "begin", "end", "comments", "org", "orgname", "orgunit", "grouptype",
        "scheme", "typevalue", "level", "userrole", "subrole", "finalresult",
        "mode", "values", "result", "interimresult", "recordstatus",
    }
)

ALLOWED_ELEMENTS = RECORD_ELEMENTS | ENVELOPE_ELEMENTS

TEACHER_ROLES = frozenset({"Teacher", "Instructor"})


class _Document:
    """Parsed tree with a parent map, so descendant selectors can be evaluated."""

    def __init__(self, root: Element):
        self.root = root
        self.parents: Dict[Element, Element] = {}
        for parent in root.iter():
            for child in parent:
                self.parents[child] = parent

    def select(self, scope: Element, path: Sequence[str]) -> Optional[Element]:
        """
        First element under ``scope`` matching a descendant selector such as
        ("n", "given"), in document order.
        """
        target, ancestors = path[-1], list(path[:-1])
        for candidate in _descendants(scope):
            if _local(candidate.tag) != target:
                continue
            if self._has_ancestors(candidate, ancestors):
                return candidate
        return None

    def _has_ancestors(self, element: Element, ancestors: List[str]) -> bool:
        remaining = list(ancestors)
        node = self.parents.get(element)
        while remaining and node is not None:
            if _local(node.tag) == remaining[-1]:
                remaining.pop()
            node = self.parents.get(node)
        return not remaining

    def text(self, scope: Optional[Element], *path: str) -> str:
        if scope is None:
            return ""
        return _clean_text(self.select(scope, path))

    def find_all(self, name: str) -> List[Element]:
        return [e for e in self.root.iter() if _local(e.tag) == name]


def _local(tag: object) -> str:
    # Comments and processing instructions have callables as tags
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _descendants(scope: Element) -> Iterator[Element]:
    iterator = scope.iter()
    next(iterator)
    yield from iterator


def _clean_text(element: Optional[Element]) -> str:
    if element is None:
        return ""
    content = "".join(element.itertext())
    return strip_control_characters(content.strip())[:MAX_TEXT_LENGTH]


def _depth(root: Element) -> int:
    deepest = 0
    stack: List[Tuple[Element, int]] = [(root, 1)]
    while stack:
        element, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in element)
    return deepest


def _disallowed_tags(element: Element) -> List[str]:
    return sorted(
        {
            _local(e.tag)
            for e in element.iter()
            if isinstance(e.tag, str) and _local(e.tag) not in ALLOWED_ELEMENTS
        }
    )


def _parse_tree(text: str) -> Element:
    try:
        return SafeET.fromstring(text)
    except DefusedXmlException as e:
        log_security_event(
            SecurityEventType.XXE_ATTEMPT_DETECTED,
            "Parser refused forbidden XML construct",
            Severity.HIGH,
            error_type=type(e).__name__,
        )
        raise DocumentSecurityError(
            "Security validation failed: forbidden XML construct", cause=e
        ) from e
    except SafeParseError as e:
        raise DocumentFormatError("Invalid XML format", cause=e) from e


def _check_record_count(count: int, limits: DocumentLimits) -> None:
    if count > limits.max_records:
        log_security_event(
            SecurityEventType.FILE_UPLOAD_BLOCKED,
            "Record count exceeds limit",
            Severity.MEDIUM,
            records=count,
            limit=limits.max_records,
        )
        raise DocumentSecurityError(f"Too many users in XML file (max: {limits.max_records})")


def _build_record(
    record_id: str,
    first_name: str,
    last_name: str,
    email: str,
    user_type: UserType,
    institutional_id: str,
    class_label: Optional[str],
) -> Tuple[Optional[UserRecord], List[str]]:
    result = validate_user(
        {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "user_type": user_type.value,
            "institutional_id": institutional_id,
            "class_label": class_label,
        }
    )
    if not result.is_valid:
        return None, result.errors

    fields = result.fields
    return (
        UserRecord(
            id=record_id,
            first_name=fields["first_name"],
            last_name=fields["last_name"],
            email=fields.get("email") or "",
            user_type=user_type,
            institutional_id=fields["institutional_id"],
            class_label=fields.get("class_label"),
        ),
        [],
    )


def _parse_person(doc: _Document, person: Element, index: int) -> Tuple[Optional[UserRecord], Optional[str]]:
    first_name = doc.text(person, "n", "given") or doc.text(person, "given")
    last_name = doc.text(person, "n", "family") or doc.text(person, "family")
    if not first_name or not last_name:
        return None, f"Skipped person at index {index}: missing first or last name"

    institution_role = doc.select(person, ("institutionrole",))
    institutional_role = doc.select(person, ("institutionalrole",))
    is_teacher = (
        institution_role is not None and institution_role.get("institutionroletype") == "faculty"
    ) or (
        institutional_role is not None and institutional_role.get("role") in TEACHER_ROLES
    )
    user_type = UserType.TEACHER if is_teacher else UserType.STUDENT

    class_label: Optional[str] = None
    if user_type is UserType.STUDENT:
        group = doc.select(person, ("group",))
        membership = doc.select(person, ("membership",))
        class_label = (
            doc.text(person, "x-schildnrw-grade")
            or doc.text(group, "description", "long")
            or doc.text(group, "description")
            or doc.text(membership, "sourcedid", "id")
            or None
        )

    institutional_id = (
        doc.text(person, "sourcedid", "id")
        or doc.text(person, "id")
        or f"{user_type.value}-{index}"
    )
    email = doc.text(person, "email") or doc.text(person, "userid")

    record, errors = _build_record(
        f"{user_type.value}-{index}",
        first_name,
        last_name,
        email,
        user_type,
        institutional_id,
        class_label,
    )
    if record is None:
        return None, f"Skipped invalid user data at index {index}: {'; '.join(errors)}"
    return record, None


def _parse_flat(doc: _Document, element: Element, user_type: UserType, index: int) -> Tuple[Optional[UserRecord], Optional[str]]:
    first_name = doc.text(element, "vorname")
    last_name = doc.text(element, "nachname")
    if not first_name or not last_name:
        return None, f"Skipped {user_type.value} at index {index}: missing first or last name"

    record, errors = _build_record(
        f"{user_type.value}-{index}",
        first_name,
        last_name,
        doc.text(element, "email"),
        user_type,
        doc.text(element, "schild_id") or f"{user_type.value}-{index}",
        (doc.text(element, "klasse") or None) if user_type is UserType.STUDENT else None,
    )
    if record is None:
        return None, f"Skipped invalid {user_type.value} data at index {index}: {'; '.join(errors)}"
    return record, None


def _reject_disallowed(element: Element, label: str, index: int) -> Optional[str]:
    disallowed = _disallowed_tags(element)
    if disallowed:
        logger.debug(
            "Unexpected XML elements in record",
            extra={"record_index": index, "error": ", ".join(disallowed[:5])},
        )
        return f"Skipped {label} at index {index}: unexpected elements {', '.join(disallowed[:5])}"
    return None


def _parse_fallback(doc: _Document, limits: DocumentLimits, result: ParseResult) -> None:
    students = doc.find_all("schueler")
    teachers = doc.find_all("lehrer")
    _check_record_count(len(students) + len(teachers), limits)

    for user_type, elements in ((UserType.STUDENT, students), (UserType.TEACHER, teachers)):
        for index, element in enumerate(elements):
            warning = _reject_disallowed(element, user_type.value, index)
            if warning is None:
                record, warning = _parse_flat(doc, element, user_type, index)
                if record is not None:
                    result.users.append(record)
            if warning:
                result.warnings.append(warning)


def parse_xml_document(text: str, limits: Optional[DocumentLimits] = None) -> ParseResult:
    """
    Parse an institutional export into user records.

    Args:
        text: Raw, untrusted document text
        limits: Security limits (defaults: 10 MiB, depth 50, 1000 entity
            references, 10000 records)

    Returns:
        ParseResult with records in document order and skip warnings

    Raises:
        DocumentSecurityError: Gate rejected the document, nesting is too deep
            or there are too many records
        DocumentFormatError: Document is not well-formed XML
    """
    limits = limits or DocumentLimits()
    sanitized, gate_warnings = enforce_document_security(text, limits)
    result = ParseResult(warnings=list(gate_warnings))

    root = _parse_tree(sanitized)
    depth = _depth(root)
    if depth > limits.max_element_depth:
        log_security_event(
            SecurityEventType.FILE_UPLOAD_BLOCKED,
            "XML nesting exceeds limit",
            Severity.MEDIUM,
            depth=depth,
            limit=limits.max_element_depth,
        )
        raise DocumentSecurityError("XML structure too deep")

    doc = _Document(root)
    persons = doc.find_all("person")

    if not persons:
        logger.debug("No person elements, trying flat export schema")
        _parse_fallback(doc, limits, result)
    else:
        _check_record_count(len(persons), limits)
        for index, person in enumerate(persons):
            warning = _reject_disallowed(person, "person", index)
            if warning is None:
                record, warning = _parse_person(doc, person, index)
                if record is not None:
                    result.users.append(record)
            if warning:
                result.warnings.append(warning)

    logger.info(
        "Parsed XML document",
        extra={
            "records_parsed": len(result.users),
            "records_skipped": len(result.warnings) - len(gate_warnings),
        },
    )
    return result


__all__ = ["ALLOWED_ELEMENTS", "parse_xml_document"]
