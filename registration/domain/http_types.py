"""Request and response values passed between the pipeline stages."""

from dataclasses import dataclass, field
from typing import Mapping


def should_close(headers: Mapping[str, str]) -> bool:
    """True when a ``Connection`` header (lowercase key) lists ``close``."""
    tokens = headers.get("connection", "").lower().split(",")
    return any(token.strip() == "close" for token in tokens)


@dataclass
class HttpRequest:
    """A fully read request. Header names are lowercase."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def wants_close(self) -> bool:
        return should_close(self.headers)


@dataclass
class HttpResponse:
    """A buffered response; ``close_connection`` ends the keep-alive loop."""

    status_line: str
    headers: dict[str, str]
    body: bytes = b""
    close_connection: bool = False

    @property
    def status_code(self) -> int:
        return int(self.status_line.split(" ", 2)[1])
