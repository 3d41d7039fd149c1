"""Tests for logging context managers."""

import logging

import pytest

from core.logging.context import get_log_context, set_log_context
from core.logging.context_managers import LogContext, log_phase


class TestLogContextManager:

    def test_sets_and_restores(self):
        set_log_context(stage="parse")

        with LogContext(stage="sync", batch_id="b-1"):
            context = get_log_context()
            assert context["stage"] == "sync"
            assert context["batch_id"] == "b-1"

        context = get_log_context()
        assert context["stage"] == "parse"
        assert context["batch_id"] == ""

    def test_none_values_leave_context_unchanged(self):
        set_log_context(realm="school")

        with LogContext(stage="sync"):
            assert get_log_context()["realm"] == "school"

    def test_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext(batch_id="b-2"):
                raise RuntimeError("boom")

        assert get_log_context()["batch_id"] == ""

    def test_nested(self):
        with LogContext(batch_id="outer"):
            with LogContext(batch_id="inner"):
                assert get_log_context()["batch_id"] == "inner"
            assert get_log_context()["batch_id"] == "outer"


class TestLogPhase:

    def test_logs_duration_and_context(self, caplog):
        logger = logging.getLogger("test.phase")

        with caplog.at_level(logging.DEBUG, logger="test.phase"):
            with log_phase(logger, "parse_xml", document_bytes=120):
                pass

        record = caplog.records[-1]
        assert record.getMessage() == "Phase complete: parse_xml"
        assert record.phase == "parse_xml"
        assert record.document_bytes == 120
        assert record.duration_ms >= 0

    def test_accepts_string_level(self, caplog):
        logger = logging.getLogger("test.phase")

        with caplog.at_level(logging.INFO, logger="test.phase"):
            with log_phase(logger, "sync_users", level="info"):
                pass

        assert caplog.records[-1].levelno == logging.INFO

    def test_logs_even_when_body_raises(self, caplog):
        logger = logging.getLogger("test.phase")

        with caplog.at_level(logging.DEBUG, logger="test.phase"):
            with pytest.raises(ValueError):
                with log_phase(logger, "broken"):
                    raise ValueError("x")

        assert caplog.records[-1].phase == "broken"
