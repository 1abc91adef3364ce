"""HTTP/1.1 wire format: request heads in, buffered responses out.

Only ``Content-Length`` framed bodies are understood. Anything this module
cannot parse raises ``ValueError`` (answered with 400), and a declared body
over the limit raises ``RequestEntityTooLarge`` (answered with 413).
"""

import asyncio
import logging
import urllib.parse

from registration.bootstrap.config import MAX_BODY_BYTES
from registration.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
)
from registration.domain.http_types import HttpResponse
from registration.pipeline.validation import RequestEntityTooLarge

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("registration.pipeline.io"), {})

CRLF = "\r\n"
BODILESS_METHODS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS"})


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Map header lines to a dict keyed by lowercase name; junk lines are skipped."""
    headers: dict[str, str] = {}
    for line in lines:
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    return headers


def parse_request_line(request_line: str) -> tuple[str, str]:
    """Return the upper-cased method and percent-decoded path; the query is dropped."""
    parts = request_line.split(" ", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid request line: {request_line!r}")
    method, target, version = parts
    if not version.startswith("HTTP/1."):
        raise ValueError(f"Unsupported HTTP version: {version!r}")
    return method.upper(), urllib.parse.unquote(urllib.parse.urlsplit(target).path)


def determine_content_length(
    method: str, headers: dict[str, str], max_body_bytes: int = MAX_BODY_BYTES
) -> int:
    """Number of body bytes that follow the head of this request."""
    if "transfer-encoding" in headers:
        raise ValueError("Transfer-Encoding is not supported")
    declared = headers.get("content-length")
    if declared is None:
        if method in BODILESS_METHODS:
            return 0
        raise ValueError("Missing Content-Length")
    if not declared.isdigit():
        raise ValueError(f"Invalid Content-Length: {declared!r}")
    length = int(declared)
    if length > max_body_bytes:
        raise RequestEntityTooLarge(f"{length} bytes exceeds {max_body_bytes}")
    return length


def parse_request_head(header_block: bytes) -> tuple[str, str, dict[str, str]]:
    """Split a header block (without the blank line) into its parts."""
    request_line, *header_lines = header_block.decode("latin-1").split(CRLF)
    method, path = parse_request_line(request_line)
    return method, path, parse_headers(header_lines)


def serialize_response(response: HttpResponse) -> bytes:
    """Render the response, adding framing and request-ID headers."""
    headers = {**response.headers, "Content-Length": str(len(response.body))}
    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id
    if response.close_connection:
        headers["Connection"] = "close"
    head = CRLF.join(
        [response.status_line, *(f"{name}: {value}" for name, value in headers.items())]
    )
    return (head + CRLF + CRLF).encode("latin-1") + response.body


async def send_response(writer: asyncio.StreamWriter, response: HttpResponse) -> None:
    writer.write(serialize_response(response))
    await writer.drain()
    IO_LOGGER.debug(
        "Response sent",
        extra={"event": "response_sent", "status_code": response.status_code},
    )
