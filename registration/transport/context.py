"""Context object shared across connection handlers."""

import asyncio
from dataclasses import dataclass, field

from registration.bootstrap.config import ServerConfig
from registration.lifecycle.signals import ShutdownSignal
from registration.lifecycle.state import ServerLifecycle
from registration.pipeline.router import Router


@dataclass
class ConnectionContext:
    """Dependencies handed by reference to every connection handler task."""

    router: Router
    lifecycle: ServerLifecycle
    shutdown: ShutdownSignal
    config: ServerConfig = field(default_factory=ServerConfig)
    # strong references only; liveness is counted by the lifecycle
    tasks: set[asyncio.Task] = field(default_factory=set)
