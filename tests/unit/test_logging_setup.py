"""Tests for logging configuration, JSON formatting and redaction."""

import json
import logging
import sys
from pathlib import Path

import pytest

from registration.bootstrap.logging_setup import (
    CorrelationIdFilter,
    JsonFormatter,
    configure_logging,
    redact_sensitive,
)


@pytest.fixture(autouse=True)
def restore_project_logger():
    """Undo configure_logging so later tests keep propagating to caplog."""
    logger = logging.getLogger("registration")
    saved = (logger.level, logger.propagate, list(logger.handlers))
    yield
    for handler in list(logger.handlers):
        if handler not in saved[2]:
            handler.close()
    logger.setLevel(saved[0])
    logger.propagate = saved[1]
    logger.handlers[:] = saved[2]


def make_record(level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="registration.lifecycle",
        level=level,
        pathname=__file__,
        lineno=0,
        msg="Test message",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_configure_logging_stream_handler():
    """Configure stdout handler with the JSON formatter."""
    logger = configure_logging("DEBUG", "stdout")

    assert logger.logger.name == "registration"
    assert logger.logger.level == logging.DEBUG
    assert not logger.logger.propagate
    assert len(logger.logger.handlers) == 1

    handler = logger.logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    assert isinstance(handler.formatter, JsonFormatter)


def test_configure_logging_replaces_previous_handlers():
    """Reconfiguring never stacks handlers."""
    configure_logging("INFO", "stdout")
    logger = configure_logging("INFO", "stdout")
    assert len(logger.logger.handlers) == 1


def test_configure_logging_file_destination(tmp_path: Path):
    """File destinations get a rotating handler and persist records."""
    destination = tmp_path / "logs" / "server.log"
    logger = configure_logging("WARNING", destination.as_posix())

    assert logger.logger.level == logging.WARNING
    handler = logger.logger.handlers[0]
    assert handler.baseFilename == destination.as_posix()

    logging.getLogger("registration.lifecycle").warning(
        "file log test", extra={"event": "shutdown_timeout", "active_connections": 2}
    )
    logging.getLogger("registration.lifecycle").info("filtered out")
    handler.flush()

    lines = destination.read_text().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["message"] == "file log test"
    assert entry["event"] == "shutdown_timeout"
    assert entry["active_connections"] == 2
    assert entry["correlation_id"] == "-"


def test_configure_logging_text_format(tmp_path: Path):
    """The text format writes one human readable line per record."""
    destination = tmp_path / "server.log"
    logger = configure_logging("INFO", destination.as_posix(), use_json=False)

    logger.info("Starting registration service")
    logger.logger.handlers[0].flush()

    lines = destination.read_text().splitlines()
    assert lines[0].endswith("INFO [-] registration :: Logging configured")
    assert lines[1].endswith("INFO [-] registration :: Starting registration service")


def test_unknown_level_falls_back_to_info():
    logger = configure_logging("CHATTY", "stdout")
    assert logger.logger.level == logging.INFO


def test_correlation_id_filter_inserts_placeholder_when_missing():
    """Filter should default correlation_id to '-' for bare records."""
    record = make_record()

    assert not hasattr(record, "correlation_id")
    assert CorrelationIdFilter().filter(record)
    assert record.correlation_id == "-"


def test_json_formatter_fields_and_stable_ordering():
    """Output carries the base fields and sorts its keys."""
    formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    record = make_record(
        correlation_id="req-1",
        component="lifecycle",
        event="draining_started",
        phase="draining",
        active_connections=3,
    )

    output = formatter.format(record)
    log_data = json.loads(output)

    assert log_data["level"] == "INFO"
    assert log_data["correlation_id"] == "req-1"
    assert log_data["component"] == "lifecycle"
    assert log_data["event"] == "draining_started"
    assert log_data["phase"] == "draining"
    assert log_data["active_connections"] == 3
    assert "timestamp" in log_data
    assert list(log_data) == sorted(log_data)
    assert formatter.format(record) == output


def test_json_formatter_defaults_missing_context():
    log_data = json.loads(JsonFormatter().format(make_record()))
    assert log_data["correlation_id"] == "-"
    assert log_data["component"] == "unknown"
    assert "event" not in log_data


def test_json_formatter_redacts_string_extras():
    """Secrets in extra fields never reach the log output."""
    record = make_record(error="password=hunter2", client="127.0.0.1:5000")
    log_data = json.loads(JsonFormatter().format(record))
    assert log_data["error"] == "[REDACTED]"
    assert log_data["client"] == "127.0.0.1:5000"


def test_json_formatter_with_exception():
    """Exception information is rendered into its own field."""
    try:
        raise ValueError("Test error")
    except ValueError:
        record = make_record(logging.ERROR)
        record.exc_info = sys.exc_info()

    log_data = json.loads(JsonFormatter().format(record))
    assert "ValueError: Test error" in log_data["exception"]


@pytest.mark.parametrize(
    "value",
    [
        "Authorization: Bearer token123",
        "api-key=secret",
        "Password: mypass",
        "0123456789abcdef0123456789abcdef",
        "YWJjZGVmZ2hpamtsbW5vcHFyc3R1dnd4eXo=",
    ],
)
def test_redact_sensitive_values(value):
    assert redact_sensitive(value) == "[REDACTED]"


@pytest.mark.parametrize(
    "value",
    ["127.0.0.1:8080", "registrations.db", "/health_check", "", None],
)
def test_redact_leaves_safe_values(value):
    assert redact_sensitive(value) == value
