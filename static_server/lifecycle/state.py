"""Server lifecycle state management."""

import enum
import logging
import socket
import threading
import time

from static_server.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.lifecycle"), {}
)


class ServerState(enum.Enum):
    """Phases a server passes through, in order."""

    INITIALIZING = "initializing"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


_ALLOWED_TRANSITIONS = {
    ServerState.INITIALIZING: {ServerState.LISTENING},
    ServerState.LISTENING: {ServerState.SHUTTING_DOWN},
    ServerState.SHUTTING_DOWN: {ServerState.STOPPED},
    ServerState.STOPPED: set(),
}


class InvalidTransition(Exception):
    """Raised when a lifecycle state change is requested out of order."""


class ServerLifecycle:
    """Tracks server state and the worker threads serving connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ServerState.INITIALIZING
        self._draining_event = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._idle_connections: set[socket.socket] = set()

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    def _transition(self, target: ServerState) -> None:
        with self._lock:
            if target not in _ALLOWED_TRANSITIONS[self._state]:
                raise InvalidTransition(
                    f"cannot move from {self._state.value} to {target.value}"
                )
            self._state = target
        LIFECYCLE_LOGGER.debug(
            "Lifecycle state changed",
            extra={"event": "state_changed", "state": target.value},
        )

    def mark_listening(self) -> None:
        """Record that the listener is bound and accepting connections."""
        self._transition(ServerState.LISTENING)

    def begin_draining(self) -> None:
        """Signal the server to begin graceful shutdown."""
        self._transition(ServerState.SHUTTING_DOWN)
        self._draining_event.set()

    def mark_stopped(self) -> None:
        """Record that every in-flight connection has finished."""
        self._transition(ServerState.STOPPED)

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self._draining_event.is_set()

    def track_idle_connection(self, connection: socket.socket) -> bool:
        """Remember a connection that has not sent its request line yet.

        Returns False once draining has begun; such a connection gets no work.
        """
        with self._lock:
            if self.is_draining():
                return False
            self._idle_connections.add(connection)
            return True

    def untrack_idle_connection(self, connection: socket.socket) -> None:
        with self._lock:
            self._idle_connections.discard(connection)

    def take_idle_connections(self) -> list[socket.socket]:
        """Hand over every idle connection and stop tracking them."""
        with self._lock:
            idle = list(self._idle_connections)
            self._idle_connections.clear()
        return idle

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {
                    w for w in self._workers if w.is_alive() or not w.ident
                }
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "shutdown_timeout",
                        "remaining_workers": len(active_workers),
                    },
                )
                return False
            for worker in active_workers:
                if worker.ident:
                    worker.join(timeout=min(0.1, remaining))
                else:
                    time.sleep(min(0.01, remaining))
                if time.monotonic() >= deadline:
                    break
