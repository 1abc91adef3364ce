"""Request validation utilities."""

from typing import Optional

from registration.domain.http_types import HttpRequest, HttpResponse
from registration.domain.response_builders import bad_request_response


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def enforce_safe_path(
    request: HttpRequest, security_headers: dict[str, str]
) -> Optional[HttpResponse]:
    """Reject paths that are not absolute or that smuggle NUL bytes."""
    if not request.path.startswith("/") or "\x00" in request.path:
        return bad_request_response(request, security_headers)
    return None


def validate_request(
    request: HttpRequest, security_headers: dict[str, str]
) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    return enforce_safe_path(request, security_headers)
