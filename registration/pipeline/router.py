"""Request routing with a per-request time budget."""

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional

from registration.bootstrap.config import SECURITY_HEADERS, ServerConfig
from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.domain.http_types import HttpRequest, HttpResponse
from registration.domain.response_builders import (
    internal_error_response,
    method_not_allowed_response,
    not_found_response,
    request_timeout_response,
)
from registration.handlers.registration_handlers import handle_registration
from registration.handlers.system_handlers import handle_health_check
from registration.lifecycle.state import ServerLifecycle
from registration.persistence.store import RegistrationStore
from registration.pipeline.validation import validate_request

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.pipeline.router"), {}
)

Handler = Callable[[HttpRequest], Awaitable[HttpResponse]]


class Router:
    """Maps (method, path) pairs to coroutine handlers.

    ``dispatch`` may be called any number of times on the same connection. Each
    call is bounded by ``request_timeout``; a handler that overruns is
    cancelled and answered with 408.
    """

    def __init__(self, request_timeout: Optional[float] = None) -> None:
        self._routes: dict[str, dict[str, Handler]] = {}
        self._request_timeout = request_timeout

    @property
    def request_timeout(self) -> Optional[float]:
        return self._request_timeout

    def add_route(self, method: str, path: str, handler: Handler) -> None:
        self._routes.setdefault(path, {})[method.upper()] = handler

    def routes(self) -> dict[str, set[str]]:
        return {path: set(methods) for path, methods in self._routes.items()}

    async def dispatch(self, request: HttpRequest) -> HttpResponse:
        """Route the request to its handler and return the response."""
        validation_error = validate_request(request, SECURITY_HEADERS)
        if validation_error is not None:
            return validation_error

        methods = self._routes.get(request.path)
        if methods is None:
            ROUTER_LOGGER.info(
                "No matching route found",
                extra={
                    "event": "route_not_found",
                    "route": request.path,
                    "method": request.method,
                },
            )
            return not_found_response(request, SECURITY_HEADERS)

        handler = methods.get(request.method)
        if handler is None:
            return method_not_allowed_response(request, SECURITY_HEADERS, methods)

        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Route matched",
                extra={
                    "event": "route_matched",
                    "route": request.path,
                    "method": request.method,
                },
            )

        try:
            return await asyncio.wait_for(handler(request), self._request_timeout)
        except asyncio.TimeoutError:
            ROUTER_LOGGER.warning(
                "Request handler timed out",
                extra={
                    "event": "request_timeout",
                    "route": request.path,
                    "method": request.method,
                },
            )
            return request_timeout_response(SECURITY_HEADERS)
        except Exception as error:  # pylint: disable=broad-except
            ROUTER_LOGGER.error(
                "Request handler failed",
                extra={
                    "event": "handler_error",
                    "route": request.path,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            return internal_error_response(SECURITY_HEADERS)


def build_router(
    store: RegistrationStore, lifecycle: ServerLifecycle, config: ServerConfig
) -> Router:
    """Wire the service endpoints."""
    router = Router(config.request_timeout)
    router.add_route(
        "GET", "/health_check", functools.partial(handle_health_check, lifecycle)
    )
    router.add_route(
        "POST", "/registrations", functools.partial(handle_registration, store)
    )
    return router
