"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Generator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port
from tests.utils.process import PROJECT_ROOT, server_command
from tests.utils.site import populate_site


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    directory: Path
    process: subprocess.Popen
    log_file: Path


def _launch_server(
    host: str,
    port: int,
    directory: Path,
    log_file: Path,
    extra_args: list[str] | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    with open(log_file, "w", encoding="utf-8") as log_handle, subprocess.Popen(
        server_command(directory, host, port, extra_args),
        cwd=PROJECT_ROOT,
        stdout=subprocess.DEVNULL,
        stderr=log_handle,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            process.terminate()
            process.wait(timeout=5)
            print(f"\nServer log:\n{log_file.read_text()}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "directory": directory,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()


@pytest.fixture()
def site_directory(tmp_path: Path) -> Path:
    """Directory holding an index page and a marker file."""

    return populate_site(tmp_path / "site")


@pytest.fixture(name="server_process")
def _server_process(
    site_directory: Path, tmp_path: Path
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the server in a background process for integration tests."""

    host = "127.0.0.1"
    port = reserve_port(host)
    yield from _launch_server(
        host,
        port,
        site_directory,
        tmp_path / "server.log",
        ["--shutdown-grace-seconds", "5"],
    )


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
