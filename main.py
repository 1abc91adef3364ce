"""Registration service entry point."""

import argparse
import asyncio
import logging
import sys

from registration.bootstrap.config import ServerConfig, parse_cli_args
from registration.bootstrap.logging_setup import configure_logging
from registration.bootstrap.startup import start_server
from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.lifecycle.signals import ShutdownSignal, SignalInstallError
from registration.lifecycle.state import ServerLifecycle
from registration.persistence.store import RegistrationStore, StoreError
from registration.pipeline.router import build_router

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("registration.server"), {})


async def serve(args: argparse.Namespace) -> bool:
    """Run the service until a shutdown signal arrives and the drain ends.

    Returns True when every connection finished within the grace period.
    """
    config = ServerConfig.from_args(args)
    store = await RegistrationStore.open(args.database_uri, args.db_pool_size)
    try:
        lifecycle = ServerLifecycle()
        shutdown = ShutdownSignal()
        shutdown.install()
        try:
            router = build_router(store, lifecycle, config)
            handle = await start_server(config, router, shutdown, lifecycle)
            SERVER_LOGGER.info(
                "Starting registration service",
                extra={
                    "host": handle.address[0],
                    "port": handle.address[1],
                    "database": args.database_uri,
                    "log_destination": args.log_destination,
                    "log_level": args.log_level,
                    "socket_timeout": config.socket_timeout,
                    "request_timeout": config.request_timeout,
                    "shutdown_grace_seconds": config.shutdown_grace_seconds,
                },
            )
            await handle.stopped_accepting()
            SERVER_LOGGER.info(
                "Waiting for active connections to complete",
                extra={
                    "event": "shutdown_waiting",
                    "active_connections": lifecycle.active_connection_count(),
                    "shutdown_grace_seconds": config.shutdown_grace_seconds,
                },
            )
            drained = await handle.wait_closed(config.shutdown_grace_seconds)
        finally:
            shutdown.uninstall()
    finally:
        await store.close()
    SERVER_LOGGER.info(
        "Server shutdown complete",
        extra={"event": "server_stopped", "signal": shutdown.received},
    )
    return drained


def main() -> None:
    """Parse arguments, configure logging and run the server to completion."""
    args = parse_cli_args(sys.argv[1:])
    configure_logging(
        args.log_level, args.log_destination, use_json=args.log_format == "json"
    )
    try:
        asyncio.run(serve(args))
    except SignalInstallError as error:
        SERVER_LOGGER.critical(
            "Cannot install shutdown signal handlers",
            extra={"event": "signal_install_failed", "error": str(error)},
        )
        sys.exit(1)
    except StoreError as error:
        SERVER_LOGGER.critical(
            "Cannot open the registration database",
            extra={"event": "store_open_failed", "error": str(error)},
        )
        sys.exit(1)
    except OSError as error:
        SERVER_LOGGER.critical(
            "Cannot bind server address",
            extra={"event": "bind_failed", "error": str(error)},
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
