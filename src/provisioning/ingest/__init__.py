"""
Ingestion of untrusted bulk exports into UserRecords.

    parse_xml_document  - institutional XML export (primary + flat fallback schema)
    parse_csv_document  - delimited text with automatic header mapping
    process_with_mapping - re-process CSV with an operator supplied mapping
    parse_document      - dispatch on format
"""

from pathlib import Path
from typing import Optional

from core.security.document_gate import DocumentLimits
from core.security.exceptions import DocumentFormatError
from provisioning.ingest.csv_parser import (
    detect_user_type,
    map_headers,
    mapping_report,
    parse_csv_document,
    process_with_mapping,
)
from provisioning.ingest.xml_parser import parse_xml_document
from provisioning.models import ParseResult

FORMATS = ("xml", "csv")


def detect_format(path: Path) -> str:
    suffix = path.suffix.lower().lstrip(".")
    if suffix in FORMATS:
        return suffix
    raise DocumentFormatError(f"Unsupported file type: {path.suffix or path.name}")


def parse_document(text: str, fmt: str, limits: Optional[DocumentLimits] = None) -> ParseResult:
    if fmt == "xml":
        return parse_xml_document(text, limits)
    if fmt == "csv":
        return parse_csv_document(text)
    raise DocumentFormatError(f"Unsupported document format: {fmt}")


__all__ = [
    "FORMATS",
    "detect_format",
    "detect_user_type",
    "map_headers",
    "mapping_report",
    "parse_csv_document",
    "parse_document",
    "parse_xml_document",
    "process_with_mapping",
]
