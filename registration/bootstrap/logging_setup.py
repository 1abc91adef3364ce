"""Logging for the registration service.

Everything logs under the ``registration`` logger tree through a
``CorrelationLoggerAdapter``. ``configure_logging`` attaches exactly one
handler to the tree root, writing either one JSON object per line or a
single-line text format, to stdout or a size-rotated file.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from registration.domain.correlation_id import MISSING_ID, CorrelationLoggerAdapter

LOGGER_NAME = "registration"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROTATE_AT_BYTES = 10 * 1024 * 1024
ROTATED_FILES_KEPT = 5
REDACTED = "[REDACTED]"

SENSITIVE_PATTERNS = (
    re.compile(r"(?i)(authorization|token|signature|password|secret|api[_-]?key)"),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
    re.compile(r"\b[A-Za-z0-9+/]{32,}={0,2}\b"),
)

# record attributes copied into JSON output when a call site sets them
EXTRA_KEYS = (
    # connection and request
    "client",
    "method",
    "route",
    "status_code",
    "error_type",
    "error",
    # lifecycle
    "signal",
    "phase",
    "active_connections",
    "issued_tokens",
    # startup
    "host",
    "port",
    "database",
    "log_destination",
    "log_level",
    "log_format",
    "socket_timeout",
    "request_timeout",
    "shutdown_grace_seconds",
)


def redact_sensitive(value: Optional[str]) -> Optional[str]:
    """Replace the whole value when any part of it looks like a credential."""
    if value and any(pattern.search(value) for pattern in SENSITIVE_PATTERNS):
        return REDACTED
    return value


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Give records logged without the adapter a placeholder correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = MISSING_ID
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, keys sorted so lines diff cleanly."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "component": getattr(record, "component", "unknown"),
            "correlation_id": getattr(record, "correlation_id", MISSING_ID),
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            entry["event"] = event
        entry.update(
            {
                key: _scrub(getattr(record, key))
                for key in EXTRA_KEYS
                if hasattr(record, key)
            }
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, sort_keys=True, default=str)


def _scrub(value: Any) -> Any:
    return redact_sensitive(value) if isinstance(value, str) else value


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _formatter(use_json: bool) -> logging.Formatter:
    if use_json:
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(TEXT_FORMAT, DATE_FORMAT)


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    """Create the single handler for the ``registration`` tree."""
    handler: logging.Handler
    if not destination or destination.lower() == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        log_path = Path(destination)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path, maxBytes=ROTATE_AT_BYTES, backupCount=ROTATED_FILES_KEPT
        )
    handler.setLevel(level)
    handler.setFormatter(_formatter(use_json))
    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """(Re)configure the ``registration`` logger and return an adapter for it.

    Calling this again replaces the previous handler instead of stacking a
    second one.
    """
    numeric_level = _resolve_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.propagate = False
    while logger.handlers:
        stale = logger.handlers.pop()
        stale.close()
    logger.addHandler(_build_handler(destination, numeric_level, use_json))

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "log_destination": destination or "stdout",
            "log_level": logging.getLevelName(numeric_level),
            "log_format": "json" if use_json else "text",
        },
    )
    return adapter
