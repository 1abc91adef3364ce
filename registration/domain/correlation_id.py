"""Per-request correlation IDs carried in a context variable.

Every connection handler is its own asyncio task, and a task runs in a copy of
the context it was created from, so an ID bound while serving one request is
never visible to another connection.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

COMPONENT_ROOT = "registration"
MISSING_ID = "-"

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _request_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Rebind the ID for the rest of the current scope."""
    _request_id.set(correlation_id)


def clear_correlation_id() -> None:
    _request_id.set(None)


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind an ID (a fresh one by default) for the duration of one request.

    On exit the binding that was active before the scope is restored, even if
    ``set_correlation_id`` replaced the ID inside it.
    """
    bound = correlation_id or generate_correlation_id()
    token = _request_id.set(bound)
    try:
        yield bound
    finally:
        _request_id.reset(token)


def component_name(logger_name: str) -> str:
    """``registration.transport.accept`` -> ``transport.accept``."""
    prefix = COMPONENT_ROOT + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix) :]
    return logger_name


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Stamps ``correlation_id`` and ``component`` onto every record."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["correlation_id"] = get_correlation_id() or MISSING_ID
        extra["component"] = component_name(self.logger.name)
        kwargs["extra"] = extra
        return msg, kwargs
