"""Server startup: bind the listener and launch the accept loop."""

import asyncio
from dataclasses import dataclass
from typing import Optional

from registration.bootstrap.config import ServerConfig
from registration.bootstrap.socket_factory import create_server_socket
from registration.lifecycle.signals import ShutdownSignal
from registration.lifecycle.state import ServerLifecycle
from registration.pipeline.router import Router
from registration.transport.accept_loop import run_accept_loop
from registration.transport.context import ConnectionContext


@dataclass
class ServerHandle:
    """What the entry point holds on to while the server runs."""

    address: tuple[str, int]
    context: ConnectionContext
    accept_task: asyncio.Task

    @property
    def lifecycle(self) -> ServerLifecycle:
        return self.context.lifecycle

    async def stopped_accepting(self) -> None:
        """Wait until the accept loop has exited and the listener is closed."""
        await self.accept_task

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait for the accept loop to exit, then for every handler to finish.

        Returns False if handlers are still running after ``timeout``.
        """
        await self.accept_task
        return await self.lifecycle.wait_for_drain(timeout)


async def start_server(
    config: ServerConfig,
    router: Router,
    shutdown: ShutdownSignal,
    lifecycle: Optional[ServerLifecycle] = None,
) -> ServerHandle:
    """Bind ``config.host:config.port`` and start accepting connections."""
    server_socket = create_server_socket(config)
    host, port = server_socket.getsockname()[:2]
    context = ConnectionContext(
        router=router,
        lifecycle=lifecycle if lifecycle is not None else ServerLifecycle(),
        shutdown=shutdown,
        config=config,
    )
    accept_task = asyncio.ensure_future(run_accept_loop(server_socket, context))
    return ServerHandle((host, port), context, accept_task)
