"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value else default


MAX_BODY_BYTES = _env_int("REGISTRATION_MAX_BODY_BYTES", 64 * 1024)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_DATABASE_URI = "registrations.db"
DEFAULT_DB_POOL_SIZE = 8
DEFAULT_SOCKET_TIMEOUT = 60.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_SHUTDOWN_GRACE_SECONDS = 30.0

HEADER_DELIMITER = b"\r\n\r\n"
MAX_HEADER_BYTES = 16 * 1024
READ_CHUNK_BYTES = 4096
ACCEPT_BACKLOG = 128
ACCEPT_ERROR_BACKOFF_SECONDS = 0.05

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
    "X-Content-Type-Options": "nosniff",
}


@dataclass
class ServerConfig:
    """Listener address plus the timeouts that bound connections and shutdown."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    shutdown_grace_seconds: Optional[float] = DEFAULT_SHUTDOWN_GRACE_SECONDS

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ServerConfig":
        """Build the config from parsed CLI arguments."""
        grace = args.shutdown_grace_seconds
        return cls(
            host=args.host,
            port=args.port,
            socket_timeout=args.socket_timeout,
            request_timeout=args.request_timeout,
            shutdown_grace_seconds=grace if grace > 0 else None,
        )


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="Registration service")
    parser.add_argument(
        "--host", default=_env_str("REGISTRATION_HOST", DEFAULT_HOST)
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=_env_int("REGISTRATION_PORT", DEFAULT_PORT),
        help="Port to listen on (0 picks an ephemeral port)",
    )
    parser.add_argument(
        "-d",
        "--database-uri",
        default=_env_str("DATABASE_URI", DEFAULT_DATABASE_URI),
        help="Path of the sqlite database file, or :memory:",
    )
    parser.add_argument(
        "--db-pool-size",
        type=int,
        default=_env_int("REGISTRATION_DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE),
        help="Number of pooled database connections",
    )
    default_log_level = os.getenv("REGISTRATION_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("REGISTRATION_LOG_DESTINATION", "stdout")
    default_log_format = os.getenv("REGISTRATION_LOG_FORMAT", "json").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_log_format,
        choices=["json", "text"],
        type=str.lower,
    )
    parser.add_argument(
        "--socket-timeout",
        type=float,
        default=_env_float("REGISTRATION_SOCKET_TIMEOUT", DEFAULT_SOCKET_TIMEOUT),
        help="Seconds an idle keep-alive connection is held open",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=_env_float("REGISTRATION_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        help="Seconds a request handler may run before answering 408",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=float,
        default=_env_float(
            "REGISTRATION_SHUTDOWN_GRACE_SECONDS", DEFAULT_SHUTDOWN_GRACE_SECONDS
        ),
        help="Upper bound on the drain wait at shutdown (0 waits indefinitely)",
    )
    return parser.parse_args(argv)
