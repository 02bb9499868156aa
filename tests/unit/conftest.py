"""Shared fixtures for unit tests."""

import logging
from pathlib import Path
from typing import Iterator

import pytest

from static_server.bootstrap.config import ServerConfig
from static_server.lifecycle.controller import ServerController
from static_server.lifecycle.state import ServerState


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("static_server")
    old_propagate = logger.propagate
    old_level = logger.level
    old_handlers = list(logger.handlers)
    logger.propagate = True
    yield
    for handler in logger.handlers:
        if handler not in old_handlers:
            handler.close()
    logger.handlers[:] = old_handlers
    logger.setLevel(old_level)
    logger.propagate = old_propagate


@pytest.fixture()
def server_config(site_directory: Path) -> ServerConfig:
    """Loopback configuration on an ephemeral port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        directory=site_directory,
        socket_timeout=5,
        shutdown_grace_seconds=5,
    )


@pytest.fixture()
def controller(server_config: ServerConfig) -> Iterator[ServerController]:
    """A started in-process server, stopped again after the test."""
    server_controller = ServerController(server_config)
    server_controller.start()
    yield server_controller
    if server_controller.lifecycle.state is ServerState.LISTENING:
        server_controller.shutdown(timeout=5)


@pytest.fixture()
def base_url(controller: ServerController) -> str:
    """Base URL of the in-process server."""
    host, port = controller.server_address
    return f"http://{host}:{port}"
