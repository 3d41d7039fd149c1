"""Tests for secret redaction."""

import logging

import pytest

from core.logging.filters import REDACTED, RedactionFilter, redact_text, redact_value


def _record(msg, args=(), **extras):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


class TestRedactText:

    def test_bearer_token(self):
        assert redact_text("Authorization: Bearer abc.def-ghi") == f"Authorization: Bearer {REDACTED}"

    @pytest.mark.parametrize(
        "key", ["access_token", "refresh_token", "code_verifier", "code", "password", "client_secret"]
    )
    def test_query_parameters(self, key):
        text = f"https://id.example.org/cb?{key}=s3cr3t&state=xyz"
        result = redact_text(text)
        assert "s3cr3t" not in result
        assert "state=xyz" in result

    def test_json_body(self):
        body = '{"access_token": "tok", "token_type": "Bearer", "refresh_token": "rt"}'
        result = redact_text(body)
        assert '"tok"' not in result
        assert '"rt"' not in result
        assert '"token_type"' in result

    def test_plain_text_untouched(self):
        assert redact_text("Created user teacher-0") == "Created user teacher-0"


class TestRedactValue:

    def test_sensitive_key(self):
        assert redact_value("access_token", "abc") == REDACTED
        assert redact_value("Password", "abc") == REDACTED

    def test_nested_dict(self):
        value = redact_value("payload", {"email": "a@b.de", "secret": "x"})
        assert value == {"email": "a@b.de", "secret": REDACTED}

    def test_non_string_passthrough(self):
        assert redact_value("records_total", 5) == 5


class TestRedactionFilter:

    def test_rewrites_message_and_args(self):
        record = _record("Calling %s", ("https://x?code=abc123",))

        assert RedactionFilter().filter(record) is True
        assert "abc123" not in record.getMessage()
        assert record.args is None

    def test_sensitive_extras_replaced(self):
        record = _record("msg", refresh_token="rt-value", record_id="teacher-1")

        RedactionFilter().filter(record)

        assert record.refresh_token == REDACTED
        assert record.record_id == "teacher-1"

    def test_bad_format_args_do_not_raise(self):
        record = _record("%d items", ("not-a-number",))
        assert RedactionFilter().filter(record) is True
        assert record.msg == "%d items"

    def test_attached_to_handler(self, caplog):
        logger = logging.getLogger("test.redaction")
        caplog.handler.addFilter(RedactionFilter())
        try:
            with caplog.at_level(logging.INFO, logger="test.redaction"):
                logger.info("token=%s", "abc")
        finally:
            caplog.handler.filters.clear()

        assert "abc" not in caplog.text
        assert REDACTED in caplog.text
