"""Health check handler."""

import logging

from registration.bootstrap.config import SECURITY_HEADERS
from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.domain.http_types import HttpRequest, HttpResponse
from registration.domain.response_builders import health_check_response
from registration.lifecycle.state import ServerLifecycle

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.handlers.system"), {}
)


async def handle_health_check(
    lifecycle: ServerLifecycle, request: HttpRequest
) -> HttpResponse:
    """Answer 200 while accepting connections and 503 once draining."""
    is_draining = lifecycle.is_draining()
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "Health check performed",
            extra={"event": "health_check", "phase": lifecycle.phase.value},
        )
    return health_check_response(request, is_draining, SECURITY_HEADERS)
