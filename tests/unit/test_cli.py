"""Golden unit tests validating CLI parsing behavior."""

from typing import TYPE_CHECKING

from registration.bootstrap.config import (
    DEFAULT_DB_POOL_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
    DEFAULT_SOCKET_TIMEOUT,
    ServerConfig,
    parse_cli_args,
)

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


def test_parse_cli_args_uses_defaults(monkeypatch: "MonkeyPatch") -> None:
    """Defaults ensure server launches with local settings."""
    monkeypatch.delenv("DATABASE_URI", raising=False)
    args = parse_cli_args([])

    assert args.host == "127.0.0.1"
    assert args.port == 8080
    assert args.database_uri == "registrations.db"
    assert args.db_pool_size == DEFAULT_DB_POOL_SIZE
    assert args.log_level == "INFO"
    assert args.log_destination == "stdout"
    assert args.log_format == "json"
    assert args.socket_timeout == DEFAULT_SOCKET_TIMEOUT
    assert args.request_timeout == DEFAULT_REQUEST_TIMEOUT
    assert args.shutdown_grace_seconds == DEFAULT_SHUTDOWN_GRACE_SECONDS


def test_parse_cli_args_honors_overrides() -> None:
    """Overrides should replace defaults when flags are present."""
    args = parse_cli_args(
        [
            "--host",
            "0.0.0.0",
            "--port",
            "9090",
            "--database-uri",
            "/tmp/test.db",
            "--db-pool-size",
            "2",
            "--log-level",
            "debug",
            "--log-destination",
            "server.log",
            "--log-format",
            "TEXT",
            "--socket-timeout",
            "5",
            "--request-timeout",
            "2.5",
            "--shutdown-grace-seconds",
            "7",
        ]
    )

    assert args.host == "0.0.0.0"
    assert args.port == 9090
    assert args.database_uri == "/tmp/test.db"
    assert args.db_pool_size == 2
    assert args.log_level == "DEBUG"
    assert args.log_destination == "server.log"
    assert args.log_format == "text"
    assert args.socket_timeout == 5.0
    assert args.request_timeout == 2.5
    assert args.shutdown_grace_seconds == 7.0


def test_parse_cli_args_short_flags() -> None:
    """The port and database have short aliases."""
    args = parse_cli_args(["-p", "0", "-d", ":memory:"])

    assert args.port == 0
    assert args.database_uri == ":memory:"


def test_parse_cli_args_honors_environment(monkeypatch: "MonkeyPatch") -> None:
    """Environment variables should seed defaults."""

    monkeypatch.setenv("REGISTRATION_LOG_LEVEL", "warning")
    monkeypatch.setenv("REGISTRATION_LOG_DESTINATION", "app.log")
    monkeypatch.setenv("REGISTRATION_PORT", "4000")
    monkeypatch.setenv("DATABASE_URI", "env.db")

    args = parse_cli_args([])

    assert args.log_level == "WARNING"
    assert args.log_destination == "app.log"
    assert args.port == 4000
    assert args.database_uri == "env.db"


def test_server_config_from_args_maps_zero_grace_to_unbounded() -> None:
    """A zero grace period means the drain wait is not bounded."""
    args = parse_cli_args(["--shutdown-grace-seconds", "0", "--port", "0"])

    config = ServerConfig.from_args(args)

    assert config.port == 0
    assert config.shutdown_grace_seconds is None


def test_server_config_from_args_keeps_timeouts() -> None:
    """Timeouts flow from arguments into the config unchanged."""
    args = parse_cli_args(["--socket-timeout", "3", "--request-timeout", "1"])

    config = ServerConfig.from_args(args)

    assert config.socket_timeout == 3.0
    assert config.request_timeout == 1.0
    assert config.shutdown_grace_seconds == DEFAULT_SHUTDOWN_GRACE_SECONDS
