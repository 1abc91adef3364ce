"""Listening socket creation."""

import logging
import socket

from registration.bootstrap.config import ACCEPT_BACKLOG, ServerConfig
from registration.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.bootstrap.socket"), {}
)


def create_server_socket(config: ServerConfig) -> socket.socket:
    """Bind a non-blocking listening socket for the event loop to accept on."""
    server_socket = socket.create_server(
        (config.host, config.port), backlog=ACCEPT_BACKLOG, reuse_port=False
    )
    server_socket.setblocking(False)
    host, port = server_socket.getsockname()[:2]
    SOCKET_LOGGER.debug(
        "Listening socket bound",
        extra={"event": "socket_bound", "host": host, "port": port},
    )
    return server_socket
