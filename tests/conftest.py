"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"
HOST = "127.0.0.1"


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    database: Path
    process: subprocess.Popen[bytes]
    log_file: Path


def _server_command(port: int, workdir: Path, grace_seconds: float) -> list[str]:
    # logs go to a file so a chatty DEBUG run cannot fill the stdout pipe
    return [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--host",
        HOST,
        "--port",
        str(port),
        "--database-uri",
        str(workdir / "registrations.db"),
        "--log-destination",
        str(workdir / "server.log"),
        "--log-level",
        "DEBUG",
        "--shutdown-grace-seconds",
        str(grace_seconds),
    ]


@contextmanager
def running_server(workdir: Path, grace_seconds: float) -> Iterator[ServerProcessInfo]:
    """Run main.py on a free port until the block exits, then stop it."""

    port = reserve_port(HOST)
    with subprocess.Popen(
        _server_command(port, workdir, grace_seconds),
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    ) as process:
        try:
            wait_for_port(HOST, port)
        except RuntimeError:
            process.kill()
            _, stderr = process.communicate(timeout=5)
            print(f"\nServer stderr:\n{stderr.decode(errors='replace')}")
            raise

        try:
            yield {
                "base_url": f"http://{HOST}:{port}",
                "host": HOST,
                "port": port,
                "database": workdir / "registrations.db",
                "process": process,
                "log_file": workdir / "server.log",
            }
        finally:
            # shutdown tests stop the process themselves
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Iterator[ServerProcessInfo]:
    """Launch the registration server with a five second drain bound."""

    with running_server(tmp_path_factory.mktemp("registration-server"), 5) as info:
        yield info


@pytest.fixture(name="short_grace_server")
def _short_grace_server(
    tmp_path_factory: "TempPathFactory",
) -> Iterator[ServerProcessInfo]:
    """Launch a server whose drain gives up after half a second."""

    with running_server(tmp_path_factory.mktemp("registration-short-grace"), 0.5) as info:
        yield info


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
