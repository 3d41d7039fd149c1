"""
Tests for CSV ingestion and header mapping.
"""

import pytest

from core.errors.exceptions import ValidationError
from core.security.exceptions import DocumentFormatError
from provisioning.ids import generate_user_id_from_email
from provisioning.ingest.csv_parser import (
    MISSING_EMAIL_WARNING,
    detect_delimiter,
    detect_user_type,
    header_matches,
    map_headers,
    mapping_report,
    normalize_header,
    parse_csv_document,
    process_with_mapping,
)
from provisioning.models import FieldMapping, UserType


class TestHeaderMatching:

    def test_normalize_header(self):
        assert normalize_header(" E-Mail Adresse ") == "emailadresse"
        assert normalize_header("Schüler_ID") == "schulerid"

    def test_exact_and_partial(self):
        assert header_matches("Vorname", ("vorname",))
        assert header_matches("Vorname des Kindes", ("vorname",))
        assert not header_matches("fn2", ("fn",))

    def test_empty_header(self):
        assert not header_matches("---", ("vorname",))

    def test_map_german_headers(self):
        assert map_headers(["Vorname", "Nachname", "E-Mail"]) == {
            "first_name": 0,
            "last_name": 1,
            "email": 2,
        }

    def test_map_english_headers(self):
        columns = map_headers(["ID", "Given Name", "Surname", "Email Address", "Role"])
        assert columns == {"id": 0, "first_name": 1, "last_name": 2, "email": 3, "user_type": 4}

    def test_column_used_once(self):
        columns = map_headers(["Vorname", "Vorname"])
        assert columns == {"first_name": 0}


class TestDetectUserType:

    @pytest.mark.parametrize("value", ["Lehrer", "Lehrerin", "Teacher", "Lehrkraft", "Pädagogin"])
    def test_teacher(self, value):
        assert detect_user_type(value) is UserType.TEACHER

    @pytest.mark.parametrize("value", ["Schüler", "schuelerin", "Student", "Azubi"])
    def test_student(self, value):
        assert detect_user_type(value) is UserType.STUDENT

    def test_unknown(self):
        assert detect_user_type("Hausmeister") is None
        assert detect_user_type("  ") is None


class TestDetectDelimiter:

    def test_semicolon(self):
        assert detect_delimiter("Vorname;Nachname;E-Mail") == ";"

    def test_comma(self):
        assert detect_delimiter("Vorname,Nachname,E-Mail") == ","

    def test_fallback(self):
        assert detect_delimiter("Vorname") == ","


class TestParseCsvDocument:

    def test_german_headers_default_to_teacher(self):
        result = parse_csv_document("Vorname,Nachname,E-Mail\nAnna,Schmidt,anna@schule.de\n")

        assert not result.needs_manual_mapping
        assert result.mapping.columns == {"first_name": 0, "last_name": 1, "email": 2}
        assert len(result.users) == 1
        record = result.users[0]
        assert record.id == "teacher-0"
        assert record.user_type is UserType.TEACHER
        assert record.email == "anna@schule.de"
        assert record.institutional_id == generate_user_id_from_email("anna@schule.de")
        assert result.warnings == []

    def test_semicolon_and_user_type_column(self):
        text = "Vorname;Nachname;E-Mail;Funktion\nAnna;Schmidt;a@schule.de;Schülerin\nBen;Braun;b@schule.de;Lehrer\n"

        result = parse_csv_document(text)

        assert [u.user_type for u in result.users] == [UserType.STUDENT, UserType.TEACHER]
        assert [u.id for u in result.users] == ["student-0", "teacher-1"]

    def test_id_column_normalized(self):
        result = parse_csv_document("Vorname,Nachname,ID\nAnna,Schmidt,12345678901\n")
        assert result.users[0].institutional_id == "ID-123456-78901"

    def test_missing_email_column(self):
        result = parse_csv_document("Vorname,Nachname\nAnna,Schmidt\n")

        assert result.warnings == [MISSING_EMAIL_WARNING]
        assert result.users[0].email == ""
        assert result.users[0].institutional_id == "teacher-2"

    def test_nameless_row_skipped(self):
        text = "Vorname,Nachname,E-Mail\n,,ghost@schule.de\nAnna,Schmidt,anna@schule.de\n"

        result = parse_csv_document(text)

        assert [u.first_name for u in result.users] == ["Anna"]
        assert result.users[0].id == "teacher-1"
        assert result.warnings == ["Row 2: no name found, skipped"]

    def test_invalid_row_skipped_with_warning(self):
        text = "Vorname,Nachname,E-Mail\nAnna,Schmidt,not-an-email\nBen,Braun,ben@schule.de\n"

        result = parse_csv_document(text)

        assert [u.first_name for u in result.users] == ["Ben"]
        assert result.warnings == ["Row 2: Invalid email format"]

    def test_blank_lines_ignored(self):
        text = "Vorname,Nachname,E-Mail\n\nAnna,Schmidt,a@schule.de\n,,\n"
        assert len(parse_csv_document(text).users) == 1

    def test_quoted_values(self):
        text = 'Vorname,Nachname,E-Mail\n"Anna Maria","von Berg",am@schule.de\n'
        record = parse_csv_document(text).users[0]
        assert record.first_name == "Anna Maria"
        assert record.last_name == "von Berg"

    def test_byte_order_mark(self):
        result = parse_csv_document("\ufeffVorname,Nachname\nAnna,Schmidt\n")
        assert result.mapping.columns["first_name"] == 0

    def test_header_only(self):
        with pytest.raises(DocumentFormatError, match="header row and at least one data row"):
            parse_csv_document("Vorname,Nachname,E-Mail\n")

    def test_no_valid_rows(self):
        with pytest.raises(DocumentFormatError, match="no valid user data found"):
            parse_csv_document("Vorname,Nachname,E-Mail\n,,x@schule.de\n")


class TestManualMapping:

    TEXT = "Spalte1,Spalte2,Spalte3\nAnna,Schmidt,anna@schule.de\nBen,Braun,ben@schule.de\n"

    def test_unmappable_headers_request_mapping(self):
        result = parse_csv_document(self.TEXT)

        assert result.needs_manual_mapping
        assert result.users == []
        assert result.mapping.headers == ["Spalte1", "Spalte2", "Spalte3"]
        assert result.mapping.sample_rows == [
            ["Anna", "Schmidt", "anna@schule.de"],
            ["Ben", "Braun", "ben@schule.de"],
        ]

    def test_sample_rows_capped(self):
        text = "A1,B1\n" + "".join(f"x{i},y{i}\n" for i in range(10))
        assert len(parse_csv_document(text).mapping.sample_rows) == 3

    def test_process_with_mapping(self):
        mapping = FieldMapping.manual(["Spalte1", "Spalte2", "Spalte3"], first_name=0, last_name=1, email=2)

        result = process_with_mapping(self.TEXT, mapping)

        assert not result.needs_manual_mapping
        assert [u.display_name for u in result.users] == ["Anna Schmidt", "Ben Braun"]
        assert result.mapping.headers == ["Spalte1", "Spalte2", "Spalte3"]

    def test_duplicate_column_rejected(self):
        mapping = FieldMapping.manual([], first_name=0, last_name=0)
        with pytest.raises(ValidationError, match="same column"):
            process_with_mapping(self.TEXT, mapping)

    def test_out_of_range_rejected(self):
        mapping = FieldMapping.manual([], first_name=0, last_name=7)
        with pytest.raises(ValidationError, match="outside the header"):
            process_with_mapping(self.TEXT, mapping)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown mapping fields"):
            FieldMapping.manual([], nickname=0)


class TestMappingReport:

    def test_report(self):
        mapping = FieldMapping(
            columns={"first_name": 0, "last_name": 1},
            headers=["Vorname", "Nachname", "Bemerkung"],
        )

        assert mapping_report(mapping) == (
            "Field mapping:\n"
            '  - first_name: "Vorname"\n'
            '  - last_name: "Nachname"\n'
            "\n"
            "Unmapped columns:\n"
            '  - "Bemerkung"'
        )

    def test_report_without_unmapped(self):
        mapping = FieldMapping(columns={"email": 0}, headers=["Mail"])
        assert mapping_report(mapping) == 'Field mapping:\n  - email: "Mail"'
