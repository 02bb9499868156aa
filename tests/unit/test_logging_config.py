"""Tests for logging configuration helpers."""

import io
import json
import logging
import sys

import pytest

from static_server.bootstrap.logging_setup import (
    CorrelationIdFilter,
    JsonFormatter,
    configure_logging,
)


def _record(msg: str = "format test", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="static_server.handlers.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_configure_logging_defaults_to_stderr_text(monkeypatch):
    """Default handler writes plain text to the diagnostic stream."""
    stream = io.StringIO()
    monkeypatch.setattr("sys.stderr", stream)

    logger = configure_logging("DEBUG")

    assert logger.logger.name == "static_server"
    assert logger.logger.level == logging.DEBUG
    assert len(logger.logger.handlers) == 1
    handler = logger.logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    assert handler.stream is stream
    assert not isinstance(handler.formatter, JsonFormatter)


def test_configure_logging_replaces_previous_handlers():
    """Reconfiguring never stacks handlers."""
    configure_logging("INFO", stream=io.StringIO())
    logger = configure_logging("WARNING", stream=io.StringIO())

    assert len(logger.logger.handlers) == 1
    assert logger.logger.level == logging.WARNING


def test_configure_logging_unknown_level_falls_back_to_info():
    """Unrecognised level names resolve to INFO."""
    logger = configure_logging("chatty", stream=io.StringIO())

    assert logger.logger.level == logging.INFO


def test_text_format_carries_message_and_correlation_id():
    """Text lines include the correlation ID and the raw message."""
    stream = io.StringIO()
    logger = configure_logging("INFO", stream=stream)

    logging.getLogger("static_server.handlers.access").info("GET /index.html 200")

    line = stream.getvalue().strip()
    assert line.endswith("static_server.handlers.access :: GET /index.html 200")
    assert "[-]" in line


def test_json_format_emits_one_object_per_line():
    """JSON output is parseable and carries whitelisted extras."""
    stream = io.StringIO()
    logger = configure_logging("INFO", use_json=True, stream=stream)

    logger.info(
        "POST /index.html 405",
        extra={"event": "request_complete", "method": "POST", "status_code": 405},
    )

    log_data = json.loads(stream.getvalue().strip())
    assert log_data["message"] == "POST /index.html 405"
    assert log_data["event"] == "request_complete"
    assert log_data["method"] == "POST"
    assert log_data["status_code"] == 405
    assert log_data["component"] == "static_server"


@pytest.fixture(name="json_formatter")
def json_formatter_fixture():
    """Create a JSON formatter instance."""
    return JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")


def test_json_formatter_basic_fields(json_formatter):
    """Required fields are always present."""
    log_data = json.loads(
        json_formatter.format(_record(correlation_id="abc", component="test"))
    )

    assert log_data["level"] == "INFO"
    assert log_data["correlation_id"] == "abc"
    assert log_data["component"] == "test"
    assert log_data["message"] == "format test"
    assert "timestamp" in log_data


def test_json_formatter_ignores_unknown_extras(json_formatter):
    """Only known extra keys are serialised."""
    log_data = json.loads(json_formatter.format(_record(secret="x", route="/a")))

    assert "secret" not in log_data
    assert log_data["route"] == "/a"


def test_json_formatter_keys_are_sorted(json_formatter):
    """Output uses stable key ordering."""
    output = json_formatter.format(_record(event="e", status_code=200))

    keys = list(json.loads(output).keys())
    assert keys == sorted(keys)


def test_json_formatter_includes_exception(json_formatter):
    """Exception tracebacks are attached under 'exception'."""
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    log_data = json.loads(json_formatter.format(record))

    assert "ValueError: boom" in log_data["exception"]


def test_correlation_id_filter_inserts_placeholder_when_missing():
    """Filter should default correlation_id to '-' for bare records."""
    record = _record()

    assert not hasattr(record, "correlation_id")
    assert CorrelationIdFilter().filter(record)
    assert record.correlation_id == "-"
