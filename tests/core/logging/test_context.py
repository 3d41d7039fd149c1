"""Tests for logging context variables."""

import asyncio

import pytest

from core.logging.context import clear_log_context, get_log_context, set_log_context


class TestLogContext:

    def test_defaults_are_empty(self):
        assert get_log_context() == {"batch_id": "", "stage": "", "realm": "", "trace_id": ""}

    def test_set_and_get(self):
        set_log_context(batch_id="b1", stage="sync", realm="school", trace_id="t1")
        assert get_log_context() == {
            "batch_id": "b1",
            "stage": "sync",
            "realm": "school",
            "trace_id": "t1",
        }

    def test_partial_update_keeps_other_fields(self):
        set_log_context(stage="parse", realm="school")
        set_log_context(stage="sync")

        context = get_log_context()
        assert context["stage"] == "sync"
        assert context["realm"] == "school"

    def test_clear(self):
        set_log_context(batch_id="b1", stage="sync")
        clear_log_context()
        assert get_log_context()["batch_id"] == ""
        assert get_log_context()["stage"] == ""

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def worker(batch_id):
            set_log_context(batch_id=batch_id)
            await asyncio.sleep(0)
            return get_log_context()["batch_id"]

        results = await asyncio.gather(worker("a"), worker("b"))
        assert results == ["a", "b"]
