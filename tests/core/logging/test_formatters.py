"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(
    msg="test message",
    level=logging.INFO,
    name="test.logger",
    exc_info=None,
    args=(),
    **extras,
):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_formats_basic_json_with_required_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")

    def test_includes_context(self):
        set_log_context(realm="school", stage="sync", batch_id="b-1")
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["realm"] == "school"
        assert output["stage"] == "sync"
        assert output["batch_id"] == "b-1"

    def test_empty_context_omitted(self):
        output = json.loads(JSONFormatter().format(_make_record()))
        assert "realm" not in output
        assert "trace_id" not in output

    def test_extra_fields_included(self):
        record = _make_record(record_id="teacher-0", http_status=201, dry_run=True)
        output = json.loads(JSONFormatter().format(record))

        assert output["record_id"] == "teacher-0"
        assert output["http_status"] == 201
        assert output["dry_run"] is True

    def test_unknown_extras_ignored(self):
        output = json.loads(JSONFormatter().format(_make_record(not_listed="x")))
        assert "not_listed" not in output

    def test_numeric_fields_coerced(self):
        record = _make_record(records_total="12", duration_ms="3.5", attempt="bad")
        output = json.loads(JSONFormatter().format(record))

        assert output["records_total"] == 12
        assert output["duration_ms"] == 3.5
        assert "attempt" not in output

    def test_source_location_for_debug_and_error(self):
        debug = json.loads(JSONFormatter().format(_make_record(level=logging.DEBUG)))
        info = json.loads(JSONFormatter().format(_make_record(level=logging.INFO)))

        assert debug["file"] == "test.py:42"
        assert "file" not in info

    def test_exception_block(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())

        output = json.loads(JSONFormatter().format(record))
        assert output["exception"]["type"] == "ValueError"
        assert output["exception"]["message"] == "bad value"
        assert "Traceback" in output["exception"]["stacktrace"]

    def test_message_redacted(self):
        record = _make_record(msg="header Bearer eyJhbGciOi.abc.def sent")
        output = json.loads(JSONFormatter().format(record))

        assert "eyJhbGciOi" not in output["message"]
        assert "[REDACTED]" in output["message"]

    def test_payload_dict_redacted_by_key(self):
        record = _make_record(payload={"username": "a@b.de", "password": "hunter2"})
        output = json.loads(JSONFormatter().format(record))

        assert output["payload"]["username"] == "a@b.de"
        assert output["payload"]["password"] == "[REDACTED]"

    def test_non_ascii_preserved(self):
        output = JSONFormatter().format(_make_record(msg="Jürgen Müller"))
        assert "Jürgen Müller" in output


class TestConsoleFormatter:

    @pytest.fixture
    def formatter(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = False
        return formatter

    def test_plain_format(self, formatter):
        line = formatter.format(_make_record(msg="hello"))
        assert " - INFO - hello" in line

    def test_context_prefix(self, formatter):
        set_log_context(realm="school", stage="parse")
        line = formatter.format(_make_record(msg="hello"))
        assert "[school]" in line
        assert "[parse]" in line

    def test_batch_and_record_tags(self, formatter):
        set_log_context(batch_id="abcdef123456")
        line = formatter.format(_make_record(msg="created", record_id="teacher-3"))
        assert "[batch:abcdef12]" in line
        assert "[teacher-3] created" in line

    def test_no_colors_when_not_tty(self, formatter):
        line = formatter.format(_make_record(level=logging.ERROR))
        assert "\033[" not in line

    def test_colors_when_tty(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = True
        line = formatter.format(_make_record(level=logging.WARNING))
        assert "\033[33mWARNING\033[0m" in line

    def test_message_redacted(self, formatter):
        line = formatter.format(_make_record(msg="refresh_token=abc123&x=1"))
        assert "abc123" not in line
