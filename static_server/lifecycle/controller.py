"""Start the listener, wait for a termination signal, drain and stop."""

import logging
import signal
import threading
from typing import Optional

from static_server.bootstrap.config import ServerConfig
from static_server.domain.correlation_id import CorrelationLoggerAdapter
from static_server.lifecycle.state import ServerLifecycle
from static_server.transport.http_server import StaticFileServer, create_server

CONTROLLER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.lifecycle.controller"), {}
)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
SERVE_POLL_INTERVAL = 0.5


class ShutdownError(Exception):
    """Raised when in-flight connections do not finish before the deadline."""


class ServerController:
    """Owns the listening server and coordinates its graceful termination."""

    def __init__(
        self, config: ServerConfig, lifecycle: Optional[ServerLifecycle] = None
    ) -> None:
        self._config = config
        self._lifecycle = lifecycle if lifecycle is not None else ServerLifecycle()
        self._server: Optional[StaticFileServer] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._shutdown_requested = threading.Event()
        self._serve_error: Optional[BaseException] = None
        self._previous_handlers: dict = {}

    @property
    def lifecycle(self) -> ServerLifecycle:
        return self._lifecycle

    @property
    def server_address(self) -> tuple[str, int]:
        """Bound (host, port); the port is the real one when 0 was requested."""
        if self._server is None:
            raise RuntimeError("server has not been started")
        host, port = self._server.server_address[:2]
        return host, port

    @property
    def serve_error(self) -> Optional[BaseException]:
        return self._serve_error

    def start(self) -> None:
        """Bind the socket and begin serving on a background thread."""
        self._server = create_server(self._config, self._lifecycle)
        self._lifecycle.mark_listening()
        host, port = self.server_address
        CONTROLLER_LOGGER.info(
            "Starting server on %s:%s serving files from %s",
            self._config.host,
            port,
            self._config.directory,
            extra={
                "event": "server_listening",
                "host": host,
                "port": port,
                "directory": str(self._config.directory),
                "socket_timeout": self._config.socket_timeout,
                "shutdown_grace_seconds": self._config.shutdown_grace_seconds,
            },
        )
        self._serve_thread = threading.Thread(
            target=self._serve, name="static-server-accept", daemon=True
        )
        self._serve_thread.start()

    def _serve(self) -> None:
        try:
            self._server.serve_forever(poll_interval=SERVE_POLL_INTERVAL)
        except Exception as error:  # pylint: disable=broad-except
            self._serve_error = error
            CONTROLLER_LOGGER.critical(
                "Error while serving",
                extra={"event": "serve_error", "error_type": type(error).__name__},
                exc_info=True,
            )
            self._shutdown_requested.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``request_shutdown``; main thread only."""
        for signum in SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        """Reinstate whatever handled SIGINT and SIGTERM before installation."""
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def _handle_signal(self, signum: int, _frame) -> None:
        CONTROLLER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "signal_received", "signal": signal.Signals(signum).name},
        )
        self.request_shutdown()

    def request_shutdown(self) -> None:
        """Wake the thread blocked in ``wait_for_shutdown_signal``."""
        self._shutdown_requested.set()

    def wait_for_shutdown_signal(self) -> None:
        """Block until shutdown is requested or the accept loop dies."""
        while not self._shutdown_requested.wait(SERVE_POLL_INTERVAL):
            if self._serve_thread is not None and not self._serve_thread.is_alive():
                break

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop accepting, close the listener and drain in-flight requests.

        Raises ShutdownError when workers are still running after ``timeout``
        seconds (``shutdown_grace_seconds`` by default).
        """
        if self._server is None:
            raise RuntimeError("server has not been started")
        grace_seconds = (
            self._config.shutdown_grace_seconds if timeout is None else timeout
        )
        CONTROLLER_LOGGER.info(
            "Shutting down server...",
            extra={"event": "shutdown_started", "grace_seconds": grace_seconds},
        )
        self._lifecycle.begin_draining()
        self._server.close_idle_connections()
        if self._serve_thread is not None:
            self._server.shutdown()
            self._serve_thread.join()
        self._server.server_close()

        if self._lifecycle.active_worker_count():
            CONTROLLER_LOGGER.info(
                "Waiting for active connections to complete",
                extra={
                    "event": "shutdown_waiting",
                    "remaining_workers": self._lifecycle.active_worker_count(),
                    "grace_seconds": grace_seconds,
                },
            )
        if not self._lifecycle.wait_for_workers(grace_seconds):
            raise ShutdownError(
                f"{self._lifecycle.active_worker_count()} connection(s) still active "
                f"after {grace_seconds}s"
            )
        self._lifecycle.mark_stopped()

    def run(self) -> int:
        """Serve until SIGINT or SIGTERM and return the process exit code."""
        self.install_signal_handlers()
        try:
            return self._run_until_signalled()
        finally:
            self.restore_signal_handlers()

    def _run_until_signalled(self) -> int:
        try:
            self.start()
        except OSError as error:
            CONTROLLER_LOGGER.critical(
                "Error starting server: %s",
                error,
                extra={
                    "event": "bind_error",
                    "host": self._config.host,
                    "port": self._config.port,
                    "error_type": type(error).__name__,
                },
            )
            return 1

        self.wait_for_shutdown_signal()
        if self._serve_error is not None:
            self._server.server_close()
            return 1

        try:
            self.shutdown()
        except ShutdownError as error:
            CONTROLLER_LOGGER.critical(
                "Error shutting down server: %s",
                error,
                extra={"event": "shutdown_error", "error_type": type(error).__name__},
            )
            return 1
        CONTROLLER_LOGGER.info("Server stopped", extra={"event": "server_stopped"})
        return 0
