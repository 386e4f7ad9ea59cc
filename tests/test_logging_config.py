"""
Tests for niobium.logging_config module.

Covers:
- JSON and console formatting
- Run context propagation
- Stage timing
"""

import json
import logging

import pytest

from niobium.logging_config import (
    ConsoleFormatter,
    LogContext,
    LogContextManager,
    PerformanceTracker,
    StructuredFormatter,
    get_logger,
    log_event,
)


def _record(message: str = "Routes fetched", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="niobium.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    LogContext.clear()
    yield
    LogContext.clear()


class TestStructuredFormatter:
    def test_json_fields(self):
        output = json.loads(StructuredFormatter().format(_record(route_count=3)))

        assert output["message"] == "Routes fetched"
        assert output["level"] == "INFO"
        assert output["service"] == "niobium"
        assert output["route_count"] == 3

    def test_includes_run_context(self):
        with LogContextManager(run_id="run-42"):
            LogContext.set_stage("fetch_routes")
            output = json.loads(StructuredFormatter().format(_record()))

        assert output["run_id"] == "run-42"
        assert output["stage"] == "fetch_routes"

    def test_exception_details(self):
        record = _record()
        record.exc_info = (ValueError, ValueError("bad body"), None)

        output = json.loads(StructuredFormatter().format(record))
        assert output["exception"]["type"] == "ValueError"

    def test_non_serializable_extra(self, tmp_path):
        output = json.loads(StructuredFormatter().format(_record(directory=tmp_path)))
        assert output["directory"] == str(tmp_path)


class TestConsoleFormatter:
    def test_shows_stage(self):
        LogContext.set_stage("publish")
        line = ConsoleFormatter().format(_record("Uploaded object"))
        assert "[publish]" in line
        assert "Uploaded object" in line


class TestLogContextManager:
    def test_clears_on_exit(self):
        with LogContextManager() as context:
            assert LogContext.get_run_id() == context.run_id
        assert LogContext.get_run_id() is None


class TestPerformanceTracker:
    def test_logs_completion(self, caplog):
        with caplog.at_level(logging.INFO, logger="niobium.performance"):
            with PerformanceTracker("fetch_routes") as tracker:
                tracker.extra["file_count"] = 2

        record = caplog.records[-1]
        assert record.getMessage() == "fetch_routes_completed"
        assert record.file_count == 2
        assert record.duration_ms >= 0

    def test_logs_failure_and_restores_stage(self, caplog):
        LogContext.set_stage("outer")
        with caplog.at_level(logging.INFO, logger="niobium.performance"):
            with pytest.raises(RuntimeError):
                with PerformanceTracker("publish"):
                    assert LogContext.get_stage() == "publish"
                    raise RuntimeError("denied")

        assert caplog.records[-1].getMessage() == "publish_failed"
        assert caplog.records[-1].levelno == logging.WARNING
        assert LogContext.get_stage() == "outer"


def test_log_event(caplog):
    with caplog.at_level(logging.INFO, logger="niobium.event"):
        log_event("changes_detected", changed_count=3)

    assert caplog.records[-1].getMessage() == "changes_detected"
    assert caplog.records[-1].changed_count == 3


def test_library_logging_keeps_caller_handlers():
    root = logging.getLogger()
    handler = logging.NullHandler()
    root.addHandler(handler)
    try:
        get_logger("niobium.pipeline")
        log_event("changes_detected", changed_count=0)
        with PerformanceTracker("fetch_routes"):
            pass
        assert handler in root.handlers
    finally:
        root.removeHandler(handler)
