"""Pure HTTP response builders.

Builders that take the request keep the client's keep-alive preference;
the rest always close, because after those errors the stream position or the
server state can no longer be trusted.
"""

import json
from typing import Any, Iterable, Optional

from registration.domain.http_types import HttpRequest, HttpResponse

OK = "HTTP/1.1 200 OK"
BAD_REQUEST = "HTTP/1.1 400 Bad Request"
NOT_FOUND = "HTTP/1.1 404 Not Found"
METHOD_NOT_ALLOWED = "HTTP/1.1 405 Method Not Allowed"
REQUEST_TIMEOUT = "HTTP/1.1 408 Request Timeout"
PAYLOAD_TOO_LARGE = "HTTP/1.1 413 Payload Too Large"
UNPROCESSABLE_ENTITY = "HTTP/1.1 422 Unprocessable Entity"
INTERNAL_SERVER_ERROR = "HTTP/1.1 500 Internal Server Error"
SERVICE_UNAVAILABLE = "HTTP/1.1 503 Service Unavailable"


def _build(
    status_line: str,
    security_headers: dict[str, str],
    *,
    request: Optional[HttpRequest] = None,
    close: bool = False,
    body: bytes = b"",
    **extra_headers: str,
) -> HttpResponse:
    headers = {**extra_headers, **security_headers}
    if request is not None:
        close = close or request.wants_close
    return HttpResponse(status_line, headers, body, close)


def empty_response(
    request: HttpRequest, security_headers: dict[str, str]
) -> HttpResponse:
    return _build(OK, security_headers, request=request)


def json_response(
    payload: Any,
    request: Optional[HttpRequest],
    security_headers: dict[str, str],
    status_line: str = OK,
) -> HttpResponse:
    """Serialize ``payload``; without a request the connection is closed."""
    return _build(
        status_line,
        security_headers,
        request=request,
        close=request is None,
        body=json.dumps(payload).encode(),
        **{"Content-Type": "application/json"},
    )


def not_found_response(
    request: HttpRequest, security_headers: dict[str, str]
) -> HttpResponse:
    return _build(NOT_FOUND, security_headers, request=request)


def method_not_allowed_response(
    request: HttpRequest, security_headers: dict[str, str], allowed_methods: Iterable[str]
) -> HttpResponse:
    """405 with an ``Allow`` header listing the route's methods."""
    return _build(
        METHOD_NOT_ALLOWED,
        security_headers,
        request=request,
        Allow=", ".join(sorted(allowed_methods)),
    )


def bad_request_response(
    request: Optional[HttpRequest], security_headers: dict[str, str]
) -> HttpResponse:
    """400; a request that could not be parsed at all always closes."""
    return _build(
        BAD_REQUEST, security_headers, request=request, close=request is None
    )


def entity_too_large_response(security_headers: dict[str, str]) -> HttpResponse:
    return _build(PAYLOAD_TOO_LARGE, security_headers, close=True)


def unprocessable_entity_response(
    request: HttpRequest, message: str, security_headers: dict[str, str]
) -> HttpResponse:
    return json_response(
        {"error": message}, request, security_headers, status_line=UNPROCESSABLE_ENTITY
    )


def request_timeout_response(security_headers: dict[str, str]) -> HttpResponse:
    return _build(REQUEST_TIMEOUT, security_headers, close=True)


def internal_error_response(security_headers: dict[str, str]) -> HttpResponse:
    return _build(INTERNAL_SERVER_ERROR, security_headers, close=True)


def draining_response(security_headers: dict[str, str]) -> HttpResponse:
    """503 ``draining``; the server is shutting down."""
    return _build(SERVICE_UNAVAILABLE, security_headers, close=True, body=b"draining")


def health_check_response(
    request: HttpRequest, is_draining: bool, security_headers: dict[str, str]
) -> HttpResponse:
    if is_draining:
        return draining_response(security_headers)
    return empty_response(request, security_headers)
