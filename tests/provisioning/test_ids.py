"""
Tests for institutional identifier handling.
"""

import pytest

from config.config import InstitutionalIdConfig
from provisioning.ids import (
    CANONICAL_ID_PATTERN,
    InstitutionalIdPolicy,
    djb2_hash,
    generate_user_id_from_email,
    is_placeholder_id,
    normalize_institutional_id,
)


class TestNormalize:

    @pytest.mark.parametrize(
        "raw",
        ["12345678901", "123456-78901", "ID 123456 78901", " 123.456.789.01 "],
    )
    def test_eleven_digits_rendered(self, raw):
        assert normalize_institutional_id(raw) == "ID-123456-78901"

    def test_idempotent(self):
        assert normalize_institutional_id("ID-123456-78901") == "ID-123456-78901"

    def test_other_values_trimmed(self):
        assert normalize_institutional_id("  1234 ") == "1234"
        assert normalize_institutional_id("teacher-3") == "teacher-3"

    def test_none(self):
        assert normalize_institutional_id(None) == ""


class TestGeneratedIds:

    def test_djb2_seed(self):
        assert djb2_hash("") == 5381

    def test_djb2_known_value(self):
        assert djb2_hash("a") == 5381 * 33 + ord("a")

    def test_djb2_stays_32_bit(self):
        assert 0 <= djb2_hash("x" * 500) <= 0xFFFFFFFF

    def test_deterministic_and_case_insensitive(self):
        first = generate_user_id_from_email("Anna@Schule.de")
        assert first == generate_user_id_from_email(" anna@schule.de ")
        assert CANONICAL_ID_PATTERN.match(first)

    def test_distinct_emails_distinct_ids(self):
        assert generate_user_id_from_email("a@schule.de") != generate_user_id_from_email("b@schule.de")

    def test_digits_come_from_hash(self):
        digits = str(djb2_hash("anna@schule.de")).zfill(11)
        assert generate_user_id_from_email("anna@schule.de") == f"ID-{digits[:6]}-{digits[6:]}"

    def test_placeholder_ids(self):
        assert is_placeholder_id("teacher-3")
        assert is_placeholder_id("student-0")
        assert not is_placeholder_id("ID-123456-78901")
        assert not is_placeholder_id("")


class TestInstitutionalIdPolicy:

    def test_disabled_by_default(self):
        assert InstitutionalIdPolicy().check("teacher-1", "123456") is None

    def test_enforced_everywhere_without_school_pattern(self):
        policy = InstitutionalIdPolicy(enforce_real_teacher_ids=True)

        assert policy.check("teacher-1", None) is not None
        assert policy.check("", None) is not None
        assert policy.check("ID-123456-1234", None) is None
        assert policy.check("12345678901", None) is None

    def test_school_pattern_limits_scope(self):
        policy = InstitutionalIdPolicy(enforce_real_teacher_ids=True, school_number_pattern=r"^19")

        assert policy.check("teacher-1", "190001") is not None
        assert policy.check("teacher-1", "200001") is None
        assert policy.check("teacher-1", None) is None

    def test_message_names_value(self):
        policy = InstitutionalIdPolicy(enforce_real_teacher_ids=True)
        assert "'teacher-1'" in policy.check("teacher-1", None)

    def test_from_config(self):
        config = InstitutionalIdConfig(
            enforce_real_teacher_ids=True, real_id_pattern=r"^X\d+$", school_number_pattern="^1"
        )

        policy = InstitutionalIdPolicy.from_config(config)

        assert policy.enforce_real_teacher_ids
        assert policy.real_id_pattern == r"^X\d+$"
        assert policy.school_number_pattern == "^1"
