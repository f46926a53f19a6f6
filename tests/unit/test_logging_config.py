"""Unit tests for structured logging."""

import asyncio
import json
import logging
import sys

import pytest

from pipeline_converter.core.logging_config import (
    StructuredFormatter,
    WorkItemFilter,
    bind_work_item,
    get_work_item,
    unbind_work_item,
)


def _record(**extra):
    record = logging.LogRecord("pipeline_converter.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_json_fields(self):
        """Test standard and extra fields are emitted as JSON."""
        data = json.loads(StructuredFormatter().format(_record(session_id="pipeline-a-1", error_code="X")))
        assert data["level"] == "INFO"
        assert data["message"] == "hello world"
        assert data["session_id"] == "pipeline-a-1"
        assert data["error_code"] == "X"
        assert data["timestamp"].endswith("Z")
        assert "phase" not in data

    def test_exception_info(self):
        """Test exceptions are serialized with type and message."""
        try:
            raise ValueError("broken")
        except ValueError:
            record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(StructuredFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "broken"


class TestWorkItemContext:
    """Tests for work item correlation."""

    def test_filter_injects_bound_item(self):
        """Test records pick up the bound work item."""
        token = bind_work_item("api")
        try:
            record = _record()
            WorkItemFilter().filter(record)
            assert record.work_item == "api"
        finally:
            unbind_work_item(token)
        assert get_work_item() == "-"

    def test_explicit_value_wins(self):
        """Test a work item passed through extra is kept."""
        record = _record(work_item="web")
        WorkItemFilter().filter(record)
        assert record.work_item == "web"

    @pytest.mark.asyncio
    async def test_tasks_are_isolated(self):
        """Test concurrent tasks each see their own work item."""

        async def worker(name):
            token = bind_work_item(name)
            try:
                await asyncio.sleep(0.01)
                return get_work_item()
            finally:
                unbind_work_item(token)

        assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]
