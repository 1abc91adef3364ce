"""Main connection acceptance loop."""

import asyncio
import functools
import logging
import socket

from registration.bootstrap.config import ACCEPT_ERROR_BACKOFF_SECONDS
from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.lifecycle.state import LivenessToken
from registration.transport.connection import handle_connection
from registration.transport.context import ConnectionContext

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.transport.accept"), {}
)


async def _accept_connection(
    loop: asyncio.AbstractEventLoop, server_socket: socket.socket
) -> tuple[socket.socket, tuple]:
    return await loop.sock_accept(server_socket)


def _finish_handler(
    token: LivenessToken, client_socket: socket.socket, task: asyncio.Task
) -> None:
    """Release the token even when the task never ran a step."""
    token.release()
    if task.cancelled() and client_socket.fileno() != -1:
        # cancelled before the streams adopted the socket
        client_socket.close()


def _spawn_handler(
    client_socket: socket.socket,
    client_address: tuple,
    context: ConnectionContext,
) -> None:
    """Hand an accepted socket to its own handler task."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )

    token = context.lifecycle.acquire_token(client_addr_str)
    try:
        task = asyncio.ensure_future(handle_connection(client_socket, context, token))
    except BaseException:
        token.release()
        client_socket.close()
        raise
    context.tasks.add(task)
    task.add_done_callback(context.tasks.discard)
    task.add_done_callback(functools.partial(_finish_handler, token, client_socket))


async def run_accept_loop(
    server_socket: socket.socket, context: ConnectionContext
) -> None:
    """Accept connections until the shutdown signal is observed.

    Each iteration races one accept against the shutdown signal. A connection
    accepted in the same wake-up as the signal is still handed off; after that
    the listening socket is closed and the lifecycle starts draining.
    """
    loop = asyncio.get_running_loop()
    host, port = server_socket.getsockname()[:2]
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={"event": "server_listening", "host": host, "port": port},
    )

    shutdown_wait = asyncio.ensure_future(context.shutdown.wait())
    accept = None
    try:
        while True:
            accept = asyncio.ensure_future(_accept_connection(loop, server_socket))
            await asyncio.wait(
                {accept, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED
            )
            if not accept.done():
                accept.cancel()
                await asyncio.wait({accept})

            if not accept.cancelled():
                error = accept.exception()
                if error is None:
                    client_socket, client_address = accept.result()
                    _spawn_handler(client_socket, client_address, context)
                elif isinstance(error, OSError):
                    ACCEPT_LOGGER.error(
                        "Socket accept failed",
                        extra={
                            "event": "accept_error",
                            "error_type": type(error).__name__,
                            "error": str(error),
                        },
                    )
                    if not shutdown_wait.done():
                        await asyncio.sleep(ACCEPT_ERROR_BACKOFF_SECONDS)
                else:
                    raise error

            if shutdown_wait.done():
                ACCEPT_LOGGER.info(
                    "Signal received, not accepting new connections",
                    extra={
                        "event": "accept_stopped",
                        "active_connections": context.lifecycle.active_connection_count(),
                    },
                )
                break
    finally:
        shutdown_wait.cancel()
        if accept is not None and not accept.done():
            accept.cancel()
        server_socket.close()
        context.lifecycle.begin_draining()
