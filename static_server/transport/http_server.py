"""Threaded HTTP listener that reports its workers to the lifecycle."""

import functools
import logging
import socket
import threading
from http.server import ThreadingHTTPServer
from typing import Optional

from static_server.bootstrap.config import ServerConfig
from static_server.domain.correlation_id import CorrelationLoggerAdapter
from static_server.handlers.static_files import StaticFileHandler
from static_server.lifecycle.state import ServerLifecycle

TRANSPORT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.transport"), {}
)


class StaticFileServer(ThreadingHTTPServer):
    """One daemon thread per connection, each registered with the lifecycle."""

    daemon_threads = True
    block_on_close = False

    def __init__(
        self,
        server_address: tuple[str, int],
        handler_class,
        lifecycle: ServerLifecycle,
        socket_timeout: Optional[float] = None,
    ) -> None:
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        self.lifecycle = lifecycle
        self.socket_timeout = socket_timeout
        super().__init__(server_address, handler_class)

    def process_request(self, request, client_address) -> None:
        thread = threading.Thread(
            target=self.process_request_thread,
            args=(request, client_address),
            daemon=self.daemon_threads,
        )
        self.lifecycle.register_worker(thread)
        thread.start()

    def process_request_thread(self, request, client_address) -> None:
        try:
            super().process_request_thread(request, client_address)
        finally:
            self.lifecycle.cleanup_worker(threading.current_thread())

    def connection_opened(self, connection: socket.socket) -> None:
        """Track a fresh connection, or end it at once when draining."""
        if not self.lifecycle.track_idle_connection(connection):
            _close_read_side(connection)

    def request_started(self, connection: socket.socket) -> None:
        self.lifecycle.untrack_idle_connection(connection)

    def connection_closed(self, connection: socket.socket) -> None:
        self.lifecycle.untrack_idle_connection(connection)

    def close_idle_connections(self) -> int:
        """Wake workers still waiting for a request line so they can exit."""
        idle = self.lifecycle.take_idle_connections()
        for connection in idle:
            _close_read_side(connection)
        if idle:
            TRANSPORT_LOGGER.info(
                "Closed idle connections",
                extra={
                    "event": "idle_connections_closed",
                    "idle_connections": len(idle),
                },
            )
        return len(idle)

    def handle_error(self, request, client_address) -> None:
        TRANSPORT_LOGGER.error(
            "Unexpected error handling connection",
            extra={
                "event": "worker_error",
                "client": f"{client_address[0]}:{client_address[1]}",
            },
            exc_info=True,
        )


def _close_read_side(connection: socket.socket) -> None:
    # A blocked readline() then sees end of stream.
    try:
        connection.shutdown(socket.SHUT_RD)
    except OSError as error:
        TRANSPORT_LOGGER.debug(
            "Connection already closed",
            extra={"event": "idle_close_skipped", "error_type": type(error).__name__},
        )


def create_server(config: ServerConfig, lifecycle: ServerLifecycle) -> StaticFileServer:
    """Bind the listening socket for ``config``; raises OSError when binding fails."""
    handler_class = functools.partial(
        StaticFileHandler, directory=str(config.directory)
    )
    server = StaticFileServer(
        (config.host, config.port),
        handler_class,
        lifecycle,
        socket_timeout=config.socket_timeout,
    )
    if TRANSPORT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        TRANSPORT_LOGGER.debug(
            "Listening socket bound",
            extra={
                "event": "socket_bound",
                "host": server.server_address[0],
                "port": server.server_address[1],
            },
        )
    return server
