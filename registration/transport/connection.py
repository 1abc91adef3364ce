"""Per-connection HTTP/1.1 driver and the handler task that runs it."""

import asyncio
import logging
import socket
from typing import Optional

from registration.bootstrap.config import (
    HEADER_DELIMITER,
    MAX_HEADER_BYTES,
    READ_CHUNK_BYTES,
    SECURITY_HEADERS,
)
from registration.domain.correlation_id import (
    CorrelationLoggerAdapter,
    correlation_scope,
    set_correlation_id,
)
from registration.domain.http_types import HttpRequest
from registration.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from registration.lifecycle.state import LivenessToken
from registration.pipeline.io import (
    determine_content_length,
    parse_request_head,
    send_response,
)
from registration.pipeline.router import Router
from registration.pipeline.validation import RequestEntityTooLarge
from registration.transport.context import ConnectionContext

CONNECTION_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.transport.connection"), {}
)


class HttpConnection:
    """Serves sequential keep-alive requests on one stream.

    ``graceful_shutdown`` puts the connection into a mode where no further
    request is read. An idle connection returns at once; a request that is
    already being read or handled runs to completion and is answered with
    ``Connection: close``.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        router: Router,
        idle_timeout: Optional[float],
        peer: str,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._router = router
        self._idle_timeout = idle_timeout
        self.peer = peer
        self._buffer = b""
        self._closing = asyncio.Event()

    def graceful_shutdown(self) -> None:
        self._closing.set()

    async def serve(self) -> None:
        """Answer requests until the peer leaves or the connection winds down."""
        while not self._closing.is_set():
            if not await self._wait_for_request():
                return
            with correlation_scope():
                keep_open = await self._serve_one()
            if not keep_open:
                return

    async def _wait_for_request(self) -> bool:
        """Wait while idle for the first bytes of the next request.

        Races the read against graceful shutdown so an idle connection closes
        promptly. Returns False when the connection should end.
        """
        if self._buffer:
            return True
        read = asyncio.ensure_future(self._reader.read(READ_CHUNK_BYTES))
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            done, _ = await asyncio.wait(
                {read, closing},
                timeout=self._idle_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            closing.cancel()
            if not read.done():
                read.cancel()

        if read in done:
            chunk = read.result()
            if not chunk:
                return False
            self._buffer += chunk
            return True
        if not done:
            CONNECTION_LOGGER.debug(
                "Idle connection timed out",
                extra={"event": "keep_alive_timeout", "client": self.peer},
            )
        return False

    async def _fill(self) -> bool:
        chunk = await asyncio.wait_for(
            self._reader.read(READ_CHUNK_BYTES), self._idle_timeout
        )
        if not chunk:
            return False
        self._buffer += chunk
        return True

    async def _read_request(self) -> Optional[HttpRequest]:
        while HEADER_DELIMITER not in self._buffer:
            if len(self._buffer) > MAX_HEADER_BYTES:
                raise ValueError("Header block too large")
            if not await self._fill():
                return None

        header_block, self._buffer = self._buffer.split(HEADER_DELIMITER, 1)
        method, path, headers = parse_request_head(header_block)

        incoming_correlation_id = headers.get("x-request-id")
        if incoming_correlation_id:
            set_correlation_id(incoming_correlation_id)

        content_length = determine_content_length(method, headers)
        while len(self._buffer) < content_length:
            if not await self._fill():
                return None

        body = self._buffer[:content_length]
        self._buffer = self._buffer[content_length:]
        return HttpRequest(method, path, headers, body)

    async def _serve_one(self) -> bool:
        """Read, dispatch and answer one request; False ends the connection."""
        try:
            request = await self._read_request()
        except RequestEntityTooLarge:
            CONNECTION_LOGGER.warning(
                "Request body size exceeded limit",
                extra={"event": "body_size_exceeded", "client": self.peer},
            )
            await send_response(self._writer, entity_too_large_response(SECURITY_HEADERS))
            return False
        except ValueError:
            CONNECTION_LOGGER.warning(
                "Malformed request received",
                extra={"event": "malformed_request", "client": self.peer},
            )
            await send_response(self._writer, bad_request_response(None, SECURITY_HEADERS))
            return False

        if request is None:
            if CONNECTION_LOGGER.logger.isEnabledFor(logging.DEBUG):
                CONNECTION_LOGGER.debug(
                    "Client disconnected during request",
                    extra={"event": "client_disconnected", "client": self.peer},
                )
            return False

        CONNECTION_LOGGER.debug(
            "Request processing started",
            extra={
                "event": "request_started",
                "client": self.peer,
                "method": request.method,
                "route": request.path,
            },
        )
        response = await self._router.dispatch(request)
        if self._closing.is_set() or request.wants_close:
            response.close_connection = True
        await send_response(self._writer, response)

        CONNECTION_LOGGER.debug(
            "Request processing complete",
            extra={
                "event": "request_complete",
                "client": self.peer,
                "status_code": response.status_code,
            },
        )
        return not response.close_connection


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass


async def handle_connection(
    client_socket: socket.socket,
    context: ConnectionContext,
    token: LivenessToken,
) -> None:
    """Serve one accepted connection, winding it down when shutdown fires.

    The liveness token is released on every exit path, cancellation included.
    """
    with token:
        peer = token.peer
        try:
            reader, writer = await asyncio.open_connection(sock=client_socket)
        except OSError as error:
            client_socket.close()
            CONNECTION_LOGGER.error(
                "Could not set up connection streams",
                extra={
                    "event": "connection_error",
                    "client": peer,
                    "error_type": type(error).__name__,
                },
            )
            return

        connection = HttpConnection(
            reader, writer, context.router, context.config.socket_timeout, peer
        )
        serving = asyncio.ensure_future(connection.serve())
        shutdown = asyncio.ensure_future(context.shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {serving, shutdown}, return_when=asyncio.FIRST_COMPLETED
            )
            if serving not in done:
                CONNECTION_LOGGER.debug(
                    "Starting graceful shutdown of connection",
                    extra={"event": "graceful_shutdown_started", "client": peer},
                )
                connection.graceful_shutdown()
            # graceful mode: only the connection's own completion matters now
            await serving
        except (
            ConnectionError,
            TimeoutError,
            asyncio.TimeoutError,
            OSError,
            UnicodeDecodeError,
        ) as error:
            CONNECTION_LOGGER.error(
                "Error handling client connection",
                extra={
                    "event": "connection_error",
                    "client": peer,
                    "error_type": type(error).__name__,
                },
            )
        except Exception as error:  # pylint: disable=broad-except
            CONNECTION_LOGGER.error(
                "Unexpected error in connection handler",
                extra={
                    "event": "handler_error",
                    "client": peer,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                exc_info=True,
            )
        finally:
            shutdown.cancel()
            if not serving.done():
                serving.cancel()
            await _close_writer(writer)
            CONNECTION_LOGGER.debug(
                "Connection closed",
                extra={
                    "event": "connection_closed",
                    "client": peer,
                    "phase": context.lifecycle.phase.value,
                },
            )
